"""Chat feature package: session orchestration around an LLM provider.

A turn appends the user message, loads a bounded history window, calls the
completion provider (buffered or streamed) and appends the assistant reply.
"""
