# hippocampus/modules/memory/route_optimizer.py
"""
Single-pass route decision over recalled candidates.

Either the store's ranking is trusted as-is ("use"), or the candidates are
re-scored locally with an intent-blended weight profile ("readjust"). No
extra network round trip happens in either case.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from hippocampus.core.types.common_types import RecalledMemory, Route, RouteDecision, WeightProfile
from hippocampus.utils.text_utils import clamp, normalize_weights, parse_iso_timestamp

logger = logging.getLogger(__name__)

CONFLICT_WINDOW = 12
CONFLICT_PENALTY = 0.4
VALUE_MATCH_WEIGHT = 0.15
RECENCY_WEIGHT = 0.05
RECENCY_HORIZON_DAYS = 365.0

CLAIM_PATTERN = re.compile(r"\b([A-Z][a-zA-Z0-9_'-]{1,40})\b\s+(?:is|are|was|were)\s+([^.,;]+)")

# Checked in order; first match wins
INTENT_PATTERNS: List[Tuple[str, "re.Pattern[str]"]] = [
    ("temporal", re.compile(r"(when|latest|recent|today|yesterday|before|after|timeline|changed)", re.IGNORECASE)),
    ("procedural", re.compile(r"(how|steps|implement|build|run|deploy|procedure)", re.IGNORECASE)),
    ("factual", re.compile(r"(who|what|which|name|owner|person|entity|preference)", re.IGNORECASE)),
]

INTENT_PRESETS: Dict[str, WeightProfile] = {
    "temporal": WeightProfile(temporal=0.5, entity=0.2, meaning=0.2, path=0.1),
    "factual": WeightProfile(temporal=0.25, entity=0.35, meaning=0.3, path=0.1),
    "procedural": WeightProfile(temporal=0.15, entity=0.2, meaning=0.45, path=0.2),
    "balanced": WeightProfile(temporal=0.3, entity=0.3, meaning=0.2, path=0.2),
}


def decide_route_and_select(
    query: str,
    candidates: Sequence[RecalledMemory],
    max_results: int,
    profile: WeightProfile,
    confidence_threshold: float,
    readjust_enabled: bool,
    now: Optional[datetime] = None,
) -> RouteDecision:
    """
    Decide whether to trust the store's ranking and select up to max_results.

    Args:
        query: The user prompt; drives intent detection when readjusting.
        candidates: Recalled memories in any order.
        max_results: Upper bound on the selection.
        profile: The identity's learned weight profile.
        confidence_threshold: Below this the ranking is re-scored.
        readjust_enabled: When False the ranking is always used as-is.
        now: Reference time for recency (sampled once when omitted).

    Returns:
        RouteDecision with route, confidence, ordered selection and reason.
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    if not ranked:
        return RouteDecision(route=Route.USE, confidence=0.0, selected=[], reason="no_candidates")

    top = ranked[0].score
    # Rank five, or the last candidate when fewer than five came back
    fifth = ranked[min(4, len(ranked) - 1)].score
    spread = clamp(top - fifth, 0.0, 1.0)
    confidence = clamp(0.65 * top + 0.35 * spread, 0.0, 1.0)

    conflict_ids = detect_conflicts(ranked)
    has_conflict = bool(conflict_ids)

    should_readjust = readjust_enabled and (confidence < confidence_threshold or has_conflict)
    if not should_readjust:
        return RouteDecision(
            route=Route.USE,
            confidence=confidence,
            selected=ranked[:max_results],
            reason="conflict_but_high_confidence" if has_conflict else "high_confidence",
        )

    intent = detect_intent(query)
    weights = blend_weights(INTENT_PRESETS[intent], profile)
    now = now or datetime.now(timezone.utc)

    def adjusted(candidate: RecalledMemory) -> float:
        penalty = 1.0 if candidate.id in conflict_ids else 0.0
        return (
            weights["temporal"] * candidate.temporal_score
            + weights["entity"] * candidate.entity_score
            + weights["meaning"] * candidate.meaning_score
            + weights["path"] * candidate.path_score
            + VALUE_MATCH_WEIGHT * candidate.value_match_score
            - CONFLICT_PENALTY * penalty
            + compute_recency_bonus(candidate.timestamp, now)
        )

    rescored = sorted(ranked, key=adjusted, reverse=True)
    logger.debug(f"[RouteOptimizer] Readjusting {len(ranked)} candidates with intent={intent} weights={weights}")

    return RouteDecision(
        route=Route.READJUST,
        confidence=confidence,
        selected=rescored[:max_results],
        reason="conflict" if has_conflict else f"low_confidence_{intent}",
    )


def detect_intent(query: str) -> str:
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(query):
            return intent
    return "balanced"


def blend_weights(preset: WeightProfile, profile: WeightProfile) -> Dict[str, float]:
    """Per-dimension mean of preset and profile, renormalized."""
    preset_values = preset.as_dict()
    profile_values = profile.as_dict()
    return normalize_weights({
        dim: (preset_values[dim] + profile_values[dim]) / 2 for dim in preset_values
    })


def extract_claim(content: str) -> Optional[Tuple[str, str]]:
    """Return (subject, predicate) for "<Capitalized> is|are|was|were <predicate>"."""
    match = CLAIM_PATTERN.search(content)
    if not match:
        return None
    return match.group(1).lower(), match.group(2).strip().lower()


def detect_conflicts(ranked: Sequence[RecalledMemory]) -> Set[str]:
    """Ids of candidates whose subject carries more than one distinct predicate."""
    by_subject: Dict[str, Dict[str, List[str]]] = {}
    for candidate in ranked[:CONFLICT_WINDOW]:
        claim = extract_claim(candidate.content)
        if claim is None:
            continue
        subject, predicate = claim
        by_subject.setdefault(subject, {}).setdefault(predicate, []).append(candidate.id)

    conflict_ids: Set[str] = set()
    for predicates in by_subject.values():
        if len(predicates) <= 1:
            continue
        for ids in predicates.values():
            conflict_ids.update(ids)
    return conflict_ids


def compute_recency_bonus(timestamp: str, now: Optional[datetime] = None) -> float:
    parsed = parse_iso_timestamp(timestamp)
    if parsed is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    age_days = (now - parsed).total_seconds() / 86400.0
    return clamp(1.0 - age_days / RECENCY_HORIZON_DAYS, 0.0, 1.0) * RECENCY_WEIGHT
