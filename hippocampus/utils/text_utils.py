import asyncio
import hashlib
import random
import re
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, TypeVar

K = TypeVar("K")

# Matches both {var} and {{var}} template placeholders
TEMPLATE_VAR_PATTERN = re.compile(r'\{\{?([a-zA-Z0-9_]+)\}?\}')


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_weights(weights: Mapping[K, float]) -> Dict[K, float]:
    """
    Floor every weight at 0 and rescale so the weights sum to 1.
    Falls back to a uniform distribution when nothing positive is left.
    """
    total = sum(max(0.0, v) for v in weights.values())
    if total <= 0:
        even = 1.0 / len(weights) if weights else 0.0
        return {k: even for k in weights}
    return {k: max(0.0, v) / total for k, v in weights.items()}


def render_template(template: str, variables: Mapping[str, str]) -> str:
    return TEMPLATE_VAR_PATTERN.sub(lambda m: variables.get(m.group(1), ""), template)


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_idempotency_key(project_id: str, agent_id: str, session_id: str, turn_id: str,
                          content: str, suffix: str) -> str:
    digest = hash_text(f"{content}:{suffix}")[:12]
    return f"oc:{project_id}:{agent_id}:{session_id}:{turn_id}:{digest}"


def utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime, or None if unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def jitter_sleep(base_ms: int, attempt: int) -> None:
    """Exponential backoff capped at 8s plus 20-50% jitter."""
    cap = min(8000, base_ms * (2 ** attempt))
    jitter = cap * (0.2 + random.random() * 0.3)
    await asyncio.sleep((cap + jitter) / 1000.0)
