# hippocampus/modules/memory/memory_heuristics.py
"""
Text heuristics shared by capture, recall formatting and the tools:
categorizing a memory, splitting a user message into atomic facts, and
rendering relative times.
"""
import re
from datetime import datetime, timezone
from typing import List, Optional

from hippocampus.core.types.common_types import BankScope, MemoryCategory, MemoryType
from hippocampus.utils.text_utils import parse_iso_timestamp

CONTEXT_TAG = "hippocampus-context"

MAX_ATOMIC_MEMORIES = 6
MIN_FRAGMENT_LENGTH = 8
MIN_SENTENCE_LENGTH = 10
OPINION_CONFIDENCE = 0.82

PROJECT_DECISION_PATTERN = re.compile(
    r"(\bproject decision\b|\bproject-level\b|\bshared rule\b|\bshared decision\b|\barchitecture\b"
    r"|\btech stack\b|\bcanonical\b|\buse\b.+\binstead\b|\bavoid\b)",
    re.IGNORECASE,
)
AGENT_SCOPED_PATTERN = re.compile(
    r"(\bprivate\b|\bonly this agent\b|\bfor this agent\b|\bagent-only\b|\bpersonal\b)",
    re.IGNORECASE,
)
PREFERENCE_PATTERN = re.compile(
    r"(\bi\s+(prefer|like|love|hate|want|need)\b|\bmy\s+preferred\b|\bpreference\b|\balways\b|\bnever\b)",
    re.IGNORECASE,
)
WORKFLOW_PATTERN = re.compile(
    r"(\bworkflow\b|\brun\b|\blint\b|\bbuild\b|\bdeploy\b|\btest\b|\blocally\b|\bcommand\b|\btooling\b)",
    re.IGNORECASE,
)
QUESTION_START_PATTERN = re.compile(
    r"^(who|what|when|where|why|how|can|could|would|should|will|do|does|did|is|are|am)\b",
    re.IGNORECASE,
)
PREFERENCE_FACT_PATTERN = re.compile(r"^i\s+(prefer|like|love|hate|dislike|want|need)\s+(.+)$", re.IGNORECASE)
PREFERENCE_SPLIT_PATTERN = re.compile(r"\s*,\s*|\s+and\s+", re.IGNORECASE)
INJECTED_CONTEXT_PATTERN = re.compile(rf"<{CONTEXT_TAG}>[\s\S]*?</{CONTEXT_TAG}>\s*")

PREFERENCE_VERBS = {
    "prefer": "prefers",
    "like": "likes",
    "love": "likes",
    "hate": "dislikes",
    "dislike": "dislikes",
    "want": "wants",
    "need": "wants",
}


def infer_memory_category(content: str) -> MemoryCategory:
    if PROJECT_DECISION_PATTERN.search(content):
        return MemoryCategory.PROJECT_DECISION
    if AGENT_SCOPED_PATTERN.search(content) or PREFERENCE_PATTERN.search(content):
        return MemoryCategory.PREFERENCE
    if WORKFLOW_PATTERN.search(content):
        return MemoryCategory.WORKFLOW
    return MemoryCategory.FACT


def category_to_memory_type(category: MemoryCategory) -> MemoryType:
    if category == MemoryCategory.PREFERENCE:
        return MemoryType.OPINION
    if category == MemoryCategory.WORKFLOW:
        return MemoryType.EXPERIENCE
    return MemoryType.WORLD


def confidence_for_memory_type(memory_type: MemoryType) -> Optional[float]:
    # The store requires a confidence on opinion memories
    return OPINION_CONFIDENCE if memory_type == MemoryType.OPINION else None


def category_targets(category: MemoryCategory) -> List[BankScope]:
    if category == MemoryCategory.PROJECT_DECISION:
        return [BankScope.SHARED]
    return [BankScope.PRIVATE]


def strip_injected_context(content: str) -> str:
    return INJECTED_CONTEXT_PATTERN.sub("", content).strip()


def to_relative_time(timestamp_iso: str, now: Optional[datetime] = None) -> str:
    parsed = parse_iso_timestamp(timestamp_iso)
    if parsed is None:
        return ""
    now = now or datetime.now(timezone.utc)
    mins = (now - parsed).total_seconds() / 60.0
    if mins < 30:
        return "just now"
    if mins < 60:
        return f"{int(mins)}m ago"
    hours = mins / 60.0
    if hours < 24:
        return f"{int(hours)}h ago"
    days = hours / 24.0
    if days < 7:
        return f"{int(days)}d ago"
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d")


def compact_text(text: str, max_length: int = 140) -> str:
    value = " ".join(text.split())
    if len(value) <= max_length:
        return value
    return f"{value[:max_length - 1]}…"


def is_likely_question(text: str) -> bool:
    text = text.strip()
    if not text:
        return False
    if "?" in text:
        return True
    return bool(QUESTION_START_PATTERN.match(text))


def _to_sentence(text: str) -> str:
    text = re.sub(r"[.;]+$", "", " ".join(text.split()))
    if not text:
        return ""
    return f"{text[0].upper()}{text[1:]}."


def _parse_preference_facts(fragment: str) -> List[str]:
    normalized = re.sub(r"[.;]+$", "", " ".join(fragment.split()))
    match = PREFERENCE_FACT_PATTERN.match(normalized)
    if not match:
        return []

    verb = PREFERENCE_VERBS[match.group(1).lower()]
    tail = match.group(2).strip()
    if not tail:
        return []

    parts = [re.sub(r"[.;]+$", "", p.strip()) for p in PREFERENCE_SPLIT_PATTERN.split(tail)]
    return [_to_sentence(f"User {verb} {part}") for part in parts if len(part) >= 2]


def _clean_memory_text(text: str, collapse_whitespace: bool = True) -> str:
    text = text.replace("[[reply_to_current]]", "")
    text = re.sub(r"\[role:[^\]]+\]", "", text)
    text = re.sub(r"\[[a-z_]+:end\]", "", text, flags=re.IGNORECASE)
    text = text.replace("**", "")
    text = re.sub(r"^[\s*-]+", "", text)
    if collapse_whitespace:
        text = " ".join(text.split())
    return text.strip()


def extract_atomic_memories(text: str) -> List[str]:
    """
    Split a user message into at most six standalone memory sentences.

    Questions are never stored. "I prefer X, Y and Z" becomes one
    "User prefers ..." sentence per item.
    """
    raw = _clean_memory_text(text, collapse_whitespace=False)
    if not raw or is_likely_question(raw):
        return []

    fragments = [_clean_memory_text(f) for f in re.split(r"\n|;+", raw)]
    out: List[str] = []
    for fragment in fragments:
        if len(fragment) < MIN_FRAGMENT_LENGTH or is_likely_question(fragment):
            continue

        preference_facts = _parse_preference_facts(fragment)
        if preference_facts:
            out.extend(preference_facts)
            continue

        sentence = _to_sentence(fragment)
        if len(sentence) >= MIN_SENTENCE_LENGTH:
            out.append(sentence)

    return list(dict.fromkeys(out))[:MAX_ATOMIC_MEMORIES]
