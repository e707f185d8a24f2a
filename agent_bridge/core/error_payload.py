"""Structured diagnostic payload reported when a turn fails."""

from __future__ import annotations

import traceback
from typing import Any, Dict, Optional, Sequence

from agent_bridge.core.config import DEFAULT_BASE_URL, ClaudeSettings, get_settings
from agent_bridge.core.output import truncate_string
from agent_bridge.utils.log import get_logger

logger = get_logger()

ABORT_ERROR_NAMES = ("AbortError", "CancelledError")
ABORT_MESSAGES = ("Claude Code process aborted by user", "The operation was aborted")

ERROR_HEADING = "Claude Code error:"
ABORT_HEADING = (
    "Claude Code was interrupted (possibly response timeout or user cancellation):"
)
SETTINGS_TIP = (
    "- Tip: the CLI can read credentials from environment variables or settings.json; "
    "the bridge only reads ~/.claude/settings.json. Configure the provider there."
)
STDERR_TAIL = 10


def is_abort_error(error: BaseException) -> bool:
    raw = str(error)
    return type(error).__name__ in ABORT_ERROR_NAMES or any(m in raw for m in ABORT_MESSAGES)


def _key_info(settings: ClaudeSettings) -> tuple[str, str]:
    env = settings.env
    if env.get("ANTHROPIC_AUTH_TOKEN") is not None:
        source, raw = "~/.claude/settings.json: ANTHROPIC_AUTH_TOKEN", env["ANTHROPIC_AUTH_TOKEN"]
    elif env.get("ANTHROPIC_API_KEY") is not None:
        source, raw = "~/.claude/settings.json: ANTHROPIC_API_KEY", env["ANTHROPIC_API_KEY"]
    else:
        return "Not configured", "Not configured (value is empty or missing)"
    key = str(raw)
    if not key:
        return source, "Not configured (value is empty or missing)"
    return source, f"{key[:10]}... (length: {len(key)} chars)"


def build_config_error_payload(
    error: BaseException,
    stderr_lines: Sequence[str] = (),
    settings: Optional[ClaudeSettings] = None,
) -> Dict[str, Any]:
    """Describe ``error`` together with the credentials the bridge used.

    Credentials are read from settings only; the process environment is
    never consulted, so the payload shows what the bridge actually sent.
    """
    raw_error = str(error) or type(error).__name__
    try:
        settings = settings if settings is not None else get_settings()
        abort = is_abort_error(error)
        key_source, key_preview = _key_info(settings)
        settings_base_url = settings.env_value("ANTHROPIC_BASE_URL")
        base_url = settings_base_url or DEFAULT_BASE_URL
        base_url_source = (
            "~/.claude/settings.json: ANTHROPIC_BASE_URL"
            if settings_base_url
            else f"Default ({DEFAULT_BASE_URL})"
        )
        message = "\n".join(
            [
                ABORT_HEADING if abort else ERROR_HEADING,
                f"- Error message: {truncate_string(raw_error)}",
                f"- Current API Key source: {key_source}",
                f"- Current API Key preview: {key_preview}",
                f"- Current Base URL: {base_url} (source: {base_url_source})",
                SETTINGS_TIP,
                "",
            ]
        )
        payload: Dict[str, Any] = {
            "success": False,
            "error": message,
            "details": {
                "rawError": raw_error,
                "errorName": type(error).__name__,
                "errorStack": "".join(traceback.format_exception(error)) or None,
                "isAbortError": abort,
                "keySource": key_source,
                "keyPreview": key_preview,
                "baseUrl": base_url,
                "baseUrlSource": base_url_source,
            },
        }
    except Exception as build_error:  # the payload must never mask the original failure
        logger.warning(
            "[bridge] Failed to build error payload: %s: %s",
            type(build_error).__name__,
            build_error,
        )
        payload = {
            "success": False,
            "error": truncate_string(raw_error),
            "details": {"rawError": raw_error, "buildErrorFailed": str(build_error)},
        }

    if stderr_lines:
        stderr_text = "\n".join(list(stderr_lines)[-STDERR_TAIL:])
        payload["error"] = f"SDK-STDERR:\n```\n{stderr_text}\n```\n\n{payload['error']}"
        payload["details"]["sdkError"] = stderr_text
    payload["error"] = truncate_string(payload["error"])
    return payload


__all__ = ["build_config_error_payload", "is_abort_error"]
