"""Model id handling for the agent SDK."""

from __future__ import annotations

import os
from typing import Optional

from agent_bridge.utils.log import get_logger

logger = get_logger()

MODEL_FAMILIES = ("opus", "haiku")
DEFAULT_FAMILY = "sonnet"


def map_model_to_sdk_name(model_id: Optional[str]) -> str:
    """Collapse a full model id to the SDK's family selector."""
    if not model_id or not isinstance(model_id, str):
        return DEFAULT_FAMILY
    lowered = model_id.lower()
    for family in MODEL_FAMILIES:
        if family in lowered:
            return family
    return DEFAULT_FAMILY


def set_model_environment(model_id: Optional[str]) -> Optional[str]:
    """Pin the family selector to ``model_id`` via ``ANTHROPIC_DEFAULT_*_MODEL``.

    Returns the variable that was set, if any.
    """
    if not model_id or not isinstance(model_id, str):
        return None
    lowered = model_id.lower()
    for family in (*MODEL_FAMILIES, DEFAULT_FAMILY):
        if family in lowered:
            variable = f"ANTHROPIC_DEFAULT_{family.upper()}_MODEL"
            os.environ[variable] = model_id
            logger.debug("[models] Pinned model family", extra={"variable": variable, "model": model_id})
            return variable
    return None


__all__ = ["map_model_to_sdk_name", "set_model_environment"]
