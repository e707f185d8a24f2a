"""Non-agentic providers that call the Messages API directly.

Used for third-party proxies and Bedrock, where the agent CLI cannot run.
Each turn is one ``messages.create`` call; the transcript is kept by the
bridge's :class:`SessionStore` so resumed sessions replay their history.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import anthropic

from agent_bridge.core.config import Credentials, get_settings, resolve_credentials
from agent_bridge.core.providers.base import Provider, TurnRequest, WireMessage
from agent_bridge.core.providers.errors import classify_anthropic_error
from agent_bridge.core.session_store import SessionStore
from agent_bridge.utils.log import get_logger

logger = get_logger()

DEFAULT_MODEL = "claude-sonnet-4-5"
MAX_TOKENS = 8192

API_ERROR_HINT = (
    "\n\nPossible causes:\n"
    "1. API Key is not configured correctly\n"
    "2. Third-party proxy service configuration issue\n"
    "3. Please check the configuration in ~/.claude/settings.json"
)

ClientFactory = Callable[[Credentials], Any]


def _empty_usage() -> Dict[str, int]:
    return {
        "input_tokens": 0,
        "output_tokens": 0,
        "cache_creation_input_tokens": 0,
        "cache_read_input_tokens": 0,
    }


def _block_to_dict(block: Any) -> Dict[str, Any]:
    if isinstance(block, dict):
        return block
    if hasattr(block, "model_dump"):
        return block.model_dump(exclude_none=True)
    return {"type": getattr(block, "type", "text"), "text": getattr(block, "text", str(block))}


def default_client_factory(credentials: Credentials) -> Any:
    if credentials.auth_type == "auth_token":
        return anthropic.AsyncAnthropic(
            auth_token=credentials.api_key, api_key=None, base_url=credentials.base_url
        )
    if credentials.auth_type == "aws_bedrock":
        return anthropic.AsyncAnthropicBedrock()
    return anthropic.AsyncAnthropic(api_key=credentials.api_key, base_url=credentials.base_url)


class DirectApiProvider(Provider):
    """Single-call provider using API-key or bearer credentials from settings."""

    name = "direct-api"

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        store: Optional[SessionStore] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        super().__init__()
        self._credentials = credentials
        self.store = store or SessionStore()
        self._client_factory = client_factory or default_client_factory

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = resolve_credentials()
        return self._credentials

    def prepare_environment(self) -> None:
        logger.debug(
            "[direct_api] Using credentials",
            extra={"provider": self.name, "key_source": self.credentials.api_key_source},
        )

    def _make_client(self) -> Any:
        return self._client_factory(self.credentials)

    def _user_content(self, request: TurnRequest) -> List[Dict[str, Any]]:
        blocks = request.extra.get("content_blocks")
        if isinstance(blocks, list) and blocks:
            return blocks
        return [{"type": "text", "text": request.prompt}]

    async def stream_turn(self, request: TurnRequest) -> AsyncIterator[WireMessage]:
        session_id = request.resume_session_id or str(uuid.uuid4())
        model = request.model or DEFAULT_MODEL
        user_content = self._user_content(request)

        self.store.append(
            session_id, request.cwd, {"type": "user", "message": {"content": user_content}}
        )
        messages: List[Dict[str, Any]] = [{"role": "user", "content": user_content}]
        if request.resuming:
            history = self.store.load_history(session_id, request.cwd)
            if history:
                messages = [*history, *messages]
                logger.debug(
                    "[direct_api] Loaded session history",
                    extra={"session_id": session_id, "count": len(history)},
                )

        yield {
            "type": "system",
            "subtype": "init",
            "cwd": request.cwd,
            "session_id": session_id,
            "tools": [],
            "mcp_servers": [],
            "model": model,
            "permissionMode": request.permission_mode,
            "apiKeySource": self.credentials.api_key_source,
            "uuid": str(uuid.uuid4()),
        }

        client = self._make_client()
        self.handle = None
        started = time.monotonic()
        try:
            response = await client.messages.create(
                model=model, max_tokens=MAX_TOKENS, messages=messages
            )
        except anthropic.AnthropicError as exc:
            mapped = classify_anthropic_error(exc)
            logger.error(
                "[direct_api] API call failed",
                extra={"model": model, "error_code": mapped.error_code, "error_message": str(mapped)},
            )
            for message in self._error_messages(session_id, model, str(mapped), mapped.error_code):
                yield message
            return

        duration_ms = int((time.monotonic() - started) * 1000)
        content = [_block_to_dict(block) for block in (getattr(response, "content", None) or [])]
        raw_usage = getattr(response, "usage", None)
        usage = {
            **_empty_usage(),
            "input_tokens": int(getattr(raw_usage, "input_tokens", 0) or 0),
            "output_tokens": int(getattr(raw_usage, "output_tokens", 0) or 0),
        }

        yield {
            "type": "assistant",
            "message": {
                "id": getattr(response, "id", None) or str(uuid.uuid4()),
                "model": getattr(response, "model", None) or model,
                "role": "assistant",
                "stop_reason": getattr(response, "stop_reason", None) or "end_turn",
                "type": "message",
                "usage": usage,
                "content": content,
            },
            "session_id": session_id,
            "uuid": str(uuid.uuid4()),
        }
        self.store.append(session_id, request.cwd, {"type": "assistant", "message": {"content": content}})

        yield {
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "duration_ms": duration_ms,
            "num_turns": 1,
            "result": "".join(b.get("text", "") for b in content if b.get("type") == "text"),
            "session_id": session_id,
            "total_cost_usd": 0,
            "usage": usage,
            "uuid": str(uuid.uuid4()),
        }

    def _error_messages(
        self, session_id: str, model: str, error_message: str, error_code: str
    ) -> List[WireMessage]:
        text = f"API error: {error_message}{API_ERROR_HINT}"
        content = [{"type": "text", "text": text}]
        return [
            {
                "type": "assistant",
                "message": {
                    "id": str(uuid.uuid4()),
                    "model": model,
                    "role": "assistant",
                    "stop_reason": "error",
                    "type": "message",
                    "usage": _empty_usage(),
                    "content": content,
                },
                "session_id": session_id,
                "uuid": str(uuid.uuid4()),
            },
            {
                "type": "result",
                "subtype": "error",
                "is_error": True,
                "error_code": error_code,
                "duration_ms": 0,
                "num_turns": 1,
                "result": text,
                "session_id": session_id,
                "total_cost_usd": 0,
                "usage": _empty_usage(),
                "uuid": str(uuid.uuid4()),
            },
        ]

    async def list_tools(self, cwd: Optional[str] = None) -> List[Dict[str, Any]]:
        return []


class BedrockProvider(DirectApiProvider):
    """Direct provider authenticating with AWS credentials from the environment."""

    name = "bedrock"

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            base_url = get_settings().env_value("ANTHROPIC_BASE_URL")
            self._credentials = Credentials(
                "aws_bedrock",
                None,
                "settings.json (AWS_BEDROCK)",
                base_url,
                "settings.json" if base_url else "default",
            )
        return self._credentials


__all__ = ["BedrockProvider", "DEFAULT_MODEL", "DirectApiProvider", "MAX_TOKENS"]
