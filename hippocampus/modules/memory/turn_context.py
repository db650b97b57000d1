# hippocampus/modules/memory/turn_context.py
import uuid
from typing import Any, List, Mapping, Optional, Sequence

from hippocampus.core.types.common_types import TurnContext
from hippocampus.utils.text_utils import utc_iso_now

TENANT_KEYS = ("tenantId", "workspaceId")
PROJECT_KEYS = ("projectId", "project_id")
AGENT_KEYS = ("agentId", "agent_id", "agentName")
SESSION_KEYS = ("sessionId", "session_id", "sessionKey")
EVENT_TURN_KEYS = ("turnId", "turn_id", "id")
CTX_TURN_KEYS = ("turnId", "turn_id")


def _read_string(record: Optional[Mapping[str, Any]], keys: Sequence[str]) -> Optional[str]:
    if not record:
        return None
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def infer_turn_context(event: Optional[Mapping[str, Any]],
                       ctx: Optional[Mapping[str, Any]] = None) -> TurnContext:
    """
    Derive the turn identity from host context first, then the event.
    Missing values fall back to fixed defaults; a missing turn id gets a uuid4.
    """
    event = event or {}
    ctx = ctx or {}

    def pick(keys: Sequence[str], default: str) -> str:
        return _read_string(ctx, keys) or _read_string(event, keys) or default

    turn_id = (
        _read_string(event, EVENT_TURN_KEYS)
        or _read_string(ctx, CTX_TURN_KEYS)
        or str(uuid.uuid4())
    )

    return TurnContext(
        tenant_id=pick(TENANT_KEYS, "default_tenant"),
        project_id=pick(PROJECT_KEYS, "default_project"),
        agent_id=pick(AGENT_KEYS, "default_agent"),
        session_id=pick(SESSION_KEYS, "default_session"),
        turn_id=turn_id,
        timestamp_iso=utc_iso_now(),
    )


def _role(message: Any) -> Optional[str]:
    return message.get("role") if isinstance(message, Mapping) else None


def extract_text(content: Any) -> str:
    """Plain text of a message content: a string, or a list of {"type": "text"} blocks."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    chunks: List[str] = []
    for block in content:
        if isinstance(block, Mapping) and block.get("type") == "text" and isinstance(block.get("text"), str):
            chunks.append(block["text"])
    return "\n".join(chunks).strip()


def count_user_turns(messages: Optional[Sequence[Any]]) -> int:
    return sum(1 for m in messages or [] if _role(m) == "user")


def latest_user_text(messages: Optional[Sequence[Any]]) -> str:
    for message in reversed(list(messages or [])):
        if _role(message) == "user":
            return extract_text(message.get("content"))
    return ""

