"""Provider registry."""

from __future__ import annotations

import importlib
from typing import Any, Optional, Type, cast

from agent_bridge.core.config import ClaudeSettings, get_settings
from agent_bridge.core.errors import ProviderUnavailableError
from agent_bridge.core.providers.base import Provider, TurnRequest
from agent_bridge.utils.log import get_logger

logger = get_logger()

PROVIDER_AUTO = "auto"
PROVIDER_AGENT_SDK = "agent-sdk"
PROVIDER_DIRECT_API = "direct-api"
PROVIDER_BEDROCK = "bedrock"
PROVIDER_NAMES = (PROVIDER_AUTO, PROVIDER_AGENT_SDK, PROVIDER_DIRECT_API, PROVIDER_BEDROCK)

_REGISTRY = {
    PROVIDER_AGENT_SDK: ("agent_sdk", "AgentSdkProvider"),
    PROVIDER_DIRECT_API: ("direct_api", "DirectApiProvider"),
    PROVIDER_BEDROCK: ("direct_api", "BedrockProvider"),
}


def _load_provider(module: str, cls: str) -> Type[Provider]:
    """Import a provider class, reporting a missing SDK as unavailable."""
    try:
        mod = importlib.import_module(f"agent_bridge.core.providers.{module}")
    except ImportError as exc:
        raise ProviderUnavailableError(f"{cls} is unavailable: {exc}") from exc
    provider_cls = getattr(mod, cls, None)
    if provider_cls is None:
        raise ProviderUnavailableError(f"{cls} not found in {module}")
    return cast(Type[Provider], provider_cls)


def resolve_provider_name(name: Optional[str], settings: Optional[ClaudeSettings] = None) -> str:
    """Pick the concrete backend for ``name``; ``auto`` prefers Bedrock when enabled."""
    chosen = (name or PROVIDER_AUTO).lower()
    if chosen not in PROVIDER_NAMES:
        raise ProviderUnavailableError(f"Unknown provider: {name}")
    if chosen != PROVIDER_AUTO:
        return chosen
    settings = settings if settings is not None else get_settings()
    return PROVIDER_BEDROCK if settings.bedrock_enabled else PROVIDER_AGENT_SDK


def get_provider(name: Optional[str] = None, **kwargs: Any) -> Provider:
    resolved = resolve_provider_name(name)
    module, cls = _REGISTRY[resolved]
    logger.debug("[providers] Selected provider", extra={"provider": resolved})
    return _load_provider(module, cls)(**kwargs)


__all__ = [
    "PROVIDER_AGENT_SDK",
    "PROVIDER_AUTO",
    "PROVIDER_BEDROCK",
    "PROVIDER_DIRECT_API",
    "PROVIDER_NAMES",
    "Provider",
    "TurnRequest",
    "get_provider",
    "resolve_provider_name",
]
