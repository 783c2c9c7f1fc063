"""Capability table: one row of model knobs per LLM-backed capability.

The orchestrator and gateway are shared; a capability differs only in the
system prompt and the sampling parameters sent to the provider.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping

from api.features.chat.prompts import DOCUMENT_SUMMARY_PROMPT, LEGAL_ASSISTANT_PROMPT
from core.settings import LLMSettings


class Capability(str, Enum):
    LEGAL_CHAT = "legal_chat"
    DOCUMENT_SUMMARY = "document_summary"


@dataclass(frozen=True)
class CapabilityProfile:
    name: Capability
    system_prompt: str
    model: str
    max_tokens: int
    temperature: float
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0

    def sampling_params(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }


DEFAULT_PROFILES: Mapping[Capability, CapabilityProfile] = {
    Capability.LEGAL_CHAT: CapabilityProfile(
        name=Capability.LEGAL_CHAT,
        system_prompt=LEGAL_ASSISTANT_PROMPT,
        model="llama-3.3-70b-versatile",
        max_tokens=2000,
        temperature=0.5,
        top_p=0.9,
        frequency_penalty=0.3,
        presence_penalty=0.2,
    ),
    Capability.DOCUMENT_SUMMARY: CapabilityProfile(
        name=Capability.DOCUMENT_SUMMARY,
        system_prompt=DOCUMENT_SUMMARY_PROMPT,
        model="llama-3.3-70b-versatile",
        max_tokens=1000,
        temperature=0.3,
    ),
}


def build_capability_table(llm_settings: LLMSettings) -> Dict[Capability, CapabilityProfile]:
    """Default profiles with model names taken from configuration."""
    return {
        Capability.LEGAL_CHAT: replace(
            DEFAULT_PROFILES[Capability.LEGAL_CHAT], model=llm_settings.LLM_MODEL
        ),
        Capability.DOCUMENT_SUMMARY: replace(
            DEFAULT_PROFILES[Capability.DOCUMENT_SUMMARY],
            model=llm_settings.LLM_SUMMARY_MODEL,
        ),
    }
