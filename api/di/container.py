"""Centralized dependency injection container.

Every collaborator of the orchestrator is built once per process here and
injected; nothing reads module-level client state at request time.
"""
import structlog
from dependency_injector import containers, providers

from core.settings import SETTINGS
from infra.resources import DatabaseResource, HttpClientResource


logger = structlog.get_logger("nyaai")


class InfrastructureContainer(containers.DeclarativeContainer):
    """Infrastructure layer dependencies."""

    config = providers.Configuration()
    settings = providers.Object(SETTINGS)
    logger = providers.Object(logger)

    # Database
    database = providers.Resource(
        DatabaseResource,
        database_url=str(SETTINGS.DATABASE.DATABASE_URL),
    )

    # Outbound HTTP (auth provider, completion provider)
    http_client = providers.Resource(
        HttpClientResource,
        timeout=SETTINGS.LLM.LLM_TIMEOUT_SECONDS,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Application services - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    message_store = providers.Singleton(
        "api.features.chat.repository.SqlMessageStore",
        database=infrastructure.database,
    )

    auth_verifier = providers.Singleton(
        "api.shared.auth.SupabaseAuthVerifier",
        http=infrastructure.http_client,
        supabase_url=SETTINGS.SUPABASE.SUPABASE_URL,
        anon_key=SETTINGS.SUPABASE.SUPABASE_ANON_KEY.get_secret_value(),
        timeout=SETTINGS.SUPABASE.AUTH_TIMEOUT_SECONDS,
    )

    llm_gateway = providers.Singleton(
        "api.features.chat.gateway.LLMGateway",
        http=infrastructure.http_client,
        base_url=SETTINGS.LLM.LLM_BASE_URL,
        api_key=SETTINGS.LLM.LLM_API_KEY.get_secret_value(),
        timeout=SETTINGS.LLM.LLM_TIMEOUT_SECONDS,
    )

    capabilities = providers.Singleton(
        "api.features.chat.capabilities.build_capability_table",
        llm_settings=SETTINGS.LLM,
    )

    session_registry = providers.Singleton(
        "api.features.chat.registry.SessionRegistry",
        store=message_store,
        title_max_length=SETTINGS.CHAT.CHAT_TITLE_MAX_LENGTH,
    )

    history_window = providers.Singleton(
        "api.features.chat.history.HistoryWindow",
        store=message_store,
        limit=SETTINGS.CHAT.CHAT_HISTORY_LIMIT,
    )

    session_locks = providers.Singleton(
        "api.features.chat.service.SessionLockRegistry",
        timeout=SETTINGS.CHAT.CHAT_TURN_LOCK_TIMEOUT,
    )

    chat_orchestrator = providers.Singleton(
        "api.features.chat.service.ChatOrchestrator",
        store=message_store,
        registry=session_registry,
        history=history_window,
        gateway=llm_gateway,
        capabilities=capabilities,
        locks=session_locks,
        summary_max_chars=SETTINGS.CHAT.CHAT_SUMMARY_MAX_CHARS,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    chat_controller = providers.Factory(
        "api.features.chat.controller.ChatController",
        orchestrator=services.chat_orchestrator,
        registry=services.session_registry,
        store=services.message_store,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.features.chat.router",
        ]
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)
