"""
Recall Service - pre-turn memory injection

Flow per turn:
1. Infer the turn identity and resolve its bank pair (cached)
2. Recall private and shared banks concurrently
3. Drop private-leaning memories that surfaced from the shared bank
4. Dedupe, then let the route optimizer pick the final selection
5. Render the selection as a tagged context block to prepend to the prompt
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from hippocampus.config.settings import HippocampusConfig
from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface
from hippocampus.core.types.common_types import (
    BankScope,
    MemoryCategory,
    RecallRequest,
    RecalledMemory,
    TurnContext,
)
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.modules.memory.memory_heuristics import (
    CONTEXT_TAG,
    infer_memory_category,
    to_relative_time,
)
from hippocampus.modules.memory.route_optimizer import decide_route_and_select
from hippocampus.modules.memory.turn_context import count_user_turns, infer_turn_context
from hippocampus.modules.memory.weight_profiles import WeightProfiles
from hippocampus.utils.exceptions import BankNotFoundError

logger = logging.getLogger(__name__)

K_PER_STRATEGY = 15
MAX_PROFILE_ITEMS = 8
MAX_RELEVANT_ITEMS = 12

CONTEXT_PREAMBLE = (
    "The following long-term memory context is for grounding. "
    "Use it only when relevant to the user request."
)
CONTEXT_FOOTER = "Do not proactively mention memory unless it is directly useful for the current request."

SHARED_VISIBLE_CATEGORIES = (MemoryCategory.PROJECT_DECISION, MemoryCategory.FACT)
PERSISTENT_CATEGORIES = (MemoryCategory.PREFERENCE, MemoryCategory.PROJECT_DECISION)


def filter_scope_memories(memories: List[RecalledMemory], scope: BankScope) -> List[RecalledMemory]:
    """Shared results only keep memories written for the shared scope."""
    if scope != BankScope.SHARED:
        return memories

    kept = []
    for memory in memories:
        target_scope = (memory.metadata or {}).get("target_scope")
        if isinstance(target_scope, str) and target_scope and target_scope != BankScope.SHARED.value:
            continue
        if infer_memory_category(memory.content) in SHARED_VISIBLE_CATEGORIES:
            kept.append(memory)
    return kept


def dedupe_memories(memories: Iterable[RecalledMemory]) -> List[RecalledMemory]:
    """One entry per id (highest score wins), best first."""
    best: Dict[str, RecalledMemory] = {}
    for memory in memories:
        existing = best.get(memory.id)
        if existing is None or memory.score > existing.score:
            best[memory.id] = memory
    return sorted(best.values(), key=lambda m: m.score, reverse=True)


def format_context(memories: List[RecalledMemory], include_profile: bool) -> Optional[str]:
    static_facts: List[str] = []
    dynamic_facts: List[str] = []
    for memory in memories:
        if infer_memory_category(memory.content) in PERSISTENT_CATEGORIES:
            static_facts.append(memory.content)
        else:
            dynamic_facts.append(memory.content)

    sections: List[str] = []
    if include_profile and static_facts:
        sections.append(
            "## Persistent Preferences/Decisions\n"
            + "\n".join(f"- {s}" for s in static_facts[:MAX_PROFILE_ITEMS])
        )
    if include_profile and dynamic_facts:
        sections.append(
            "## Recent Context\n"
            + "\n".join(f"- {s}" for s in dynamic_facts[:MAX_PROFILE_ITEMS])
        )

    relevant = [
        f"- [{to_relative_time(m.timestamp)}] {m.content} ({round(m.score * 100)}%)"
        for m in memories[:MAX_RELEVANT_ITEMS]
    ]
    if relevant:
        sections.append("## Relevant Memories\n" + "\n".join(relevant))

    if not sections:
        return None

    return "\n".join([
        f"<{CONTEXT_TAG}>",
        CONTEXT_PREAMBLE,
        "",
        *sections,
        "",
        CONTEXT_FOOTER,
        f"</{CONTEXT_TAG}>",
    ])


class RecallService:
    """Handler for the host's before_agent_start event."""

    def __init__(
        self,
        client: MemoryStoreInterface,
        config: HippocampusConfig,
        banks: BankResolver,
        weight_profiles: WeightProfiles,
        on_turn_context: Optional[Callable[[TurnContext], None]] = None,
    ):
        self.client = client
        self.config = config
        self.banks = banks
        self.weight_profiles = weight_profiles
        self.on_turn_context = on_turn_context

    async def handle(self, event: Dict[str, Any], ctx: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, str]]:
        prompt = event.get("prompt")
        prompt = prompt.strip() if isinstance(prompt, str) else ""
        if not prompt:
            return None

        turn = infer_turn_context(event, ctx)
        if self.on_turn_context:
            self.on_turn_context(turn)

        try:
            resolved = await self.banks.resolve_for_turn(turn)
        except Exception as e:
            logger.warning(f"[RecallService] Bank resolution failed, skipping recall: {e}")
            return None

        weights = self.weight_profiles.get(turn)
        max_results = self.config.max_recall_results
        payload = RecallRequest.for_profile(
            query=prompt,
            k_results=max(max_results * 2, max_results),
            profile=weights,
            k_per_strategy=K_PER_STRATEGY,
        )

        private_results, shared_results = await asyncio.gather(
            self.recall_for_scope(BankScope.PRIVATE, resolved.private_bank_id, payload, turn),
            self.recall_for_scope(BankScope.SHARED, resolved.shared_bank_id, payload, turn),
        )

        merged = dedupe_memories([*private_results, *shared_results])
        decision = decide_route_and_select(
            query=prompt,
            candidates=merged,
            max_results=max_results,
            profile=weights,
            confidence_threshold=self.config.readjust_confidence_threshold,
            readjust_enabled=self.config.readjust_enabled,
        )
        logger.debug(
            f"recall route={decision.route.value} confidence={decision.confidence:.3f} reason={decision.reason}"
        )

        if not decision.selected:
            return None

        messages = event.get("messages")
        turns = count_user_turns(messages if isinstance(messages, list) else [])
        include_profile = turns <= 1 or turns % self.config.profile_frequency == 0

        context = format_context(decision.selected, include_profile)
        if not context:
            return None
        return {"prependContext": context}

    async def recall_for_scope(self, scope: BankScope, bank_id: str, payload: RecallRequest,
                               turn: TurnContext) -> List[RecalledMemory]:
        """Recall one bank; a stale bank id is re-resolved once, other failures yield []."""
        try:
            return await self._run(scope, bank_id, payload)
        except BankNotFoundError:
            logger.warning(
                f"[RecallService] Bank not found during recall for {scope.value}; "
                f"invalidating cache and retrying once"
            )
        except Exception as e:
            logger.warning(f"[RecallService] Recall failed for {scope.value} bank_id={bank_id}: {e}")
            return []

        self.banks.invalidate_by_bank_id(bank_id)
        try:
            refreshed = await self.banks.resolve_for_turn(turn)
            bank_id = refreshed.for_scope(scope)
            return await self._run(scope, bank_id, payload)
        except Exception as e:
            logger.warning(f"[RecallService] Recall retry failed for {scope.value} bank_id={bank_id}: {e}")
            return []

    async def _run(self, scope: BankScope, bank_id: str, payload: RecallRequest) -> List[RecalledMemory]:
        response = await self.client.recall(bank_id, payload)
        memories = [item.to_recalled(scope) for item in response.memories or []]
        return filter_scope_memories(memories, scope)
