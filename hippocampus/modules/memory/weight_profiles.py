"""
Weight Profiles - per-identity retrieval weights learned from user corrections

When the user signals that a recalled answer was wrong, the profile for the
(project, agent) identity is nudged toward the dimension the correction
points at. The update is queued on the event loop so the turn that carries
the correction is never slowed down by it.
"""
import asyncio
import logging
import re
from typing import Dict, Optional

from hippocampus.core.types.common_types import TurnContext, WeightProfile
from hippocampus.utils.text_utils import normalize_weights

logger = logging.getLogger(__name__)

SIGNAL_DELTA = 0.05

DEFAULT_PROFILE = WeightProfile(temporal=0.3, entity=0.3, meaning=0.2, path=0.2)

WRONGNESS_PATTERN = re.compile(r"(wrong|incorrect|not right|i said|that's not|that is not)", re.IGNORECASE)
TEMPORAL_SIGNAL_PATTERN = re.compile(
    r"(latest|recent|outdated|now|no longer|changed|today|yesterday|when)", re.IGNORECASE
)
ENTITY_SIGNAL_PATTERN = re.compile(r"(who|name|person|team|owner|entity)", re.IGNORECASE)
PROCEDURAL_SIGNAL_PATTERN = re.compile(r"(how|steps|implement|build|run|deploy|procedure)", re.IGNORECASE)

# Per-signal adjustments, in multiples of SIGNAL_DELTA
SIGNAL_ADJUSTMENTS: Dict[str, Dict[str, float]] = {
    "temporal": {"temporal": 1.0, "meaning": -0.5, "path": -0.5},
    "entity": {"entity": 1.0, "meaning": -0.5, "path": -0.5},
    "procedural": {"path": 1.0, "meaning": 0.5, "temporal": -0.5},
    "generic": {"meaning": 1.0, "entity": 0.5, "temporal": -0.5},
}


def detect_correction_signal(text: str) -> Optional[str]:
    if not text or not WRONGNESS_PATTERN.search(text):
        return None
    if TEMPORAL_SIGNAL_PATTERN.search(text):
        return "temporal"
    if ENTITY_SIGNAL_PATTERN.search(text):
        return "entity"
    if PROCEDURAL_SIGNAL_PATTERN.search(text):
        return "procedural"
    return "generic"


def apply_signal(profile: WeightProfile, signal: str) -> WeightProfile:
    values = profile.as_dict()
    for dim, factor in SIGNAL_ADJUSTMENTS.get(signal, {}).items():
        values[dim] += factor * SIGNAL_DELTA
    return WeightProfile.from_dict(normalize_weights(values))


class WeightProfiles:
    """In-memory profile store keyed by "{project_id}::{agent_id}"."""

    def __init__(self):
        self._profiles: Dict[str, WeightProfile] = {}

    @staticmethod
    def _key(turn: TurnContext) -> str:
        return f"{turn.project_id}::{turn.agent_id}"

    def get(self, turn: TurnContext) -> WeightProfile:
        """Returns a copy; callers may not mutate stored profiles."""
        stored = self._profiles.get(self._key(turn))
        return WeightProfile(**(stored or DEFAULT_PROFILE).as_dict())

    def ingest_correction_signal(self, turn: TurnContext, user_text: str) -> Optional[str]:
        """
        Queue a profile adjustment if the text reads as a correction.

        Returns the detected signal (None when nothing was scheduled).
        """
        signal = detect_correction_signal(user_text)
        if signal is None:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._apply(turn, signal)
            return signal

        loop.call_soon(self._apply, turn, signal)
        return signal

    def _apply(self, turn: TurnContext, signal: str) -> None:
        # Reads the profile at execution time so queued updates compose
        key = self._key(turn)
        updated = apply_signal(self.get(turn), signal)
        self._profiles[key] = updated
        logger.debug(f"[WeightProfiles] {key} adjusted for {signal} correction -> {updated.as_dict()}")
