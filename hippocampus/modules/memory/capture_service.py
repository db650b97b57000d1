"""
Capture Service - post-turn memory writes

Splits the latest user message into atomic memories, routes each to the
shared or private bank by category, and writes them with deterministic
idempotency keys so a replayed turn never duplicates memories.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from hippocampus.config.settings import HippocampusConfig
from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface
from hippocampus.core.types.common_types import (
    BankScope,
    MemoryCategory,
    RememberRequest,
    RememberResponse,
    TurnContext,
)
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.modules.memory.memory_heuristics import (
    category_targets,
    category_to_memory_type,
    confidence_for_memory_type,
    extract_atomic_memories,
    infer_memory_category,
    strip_injected_context,
)
from hippocampus.modules.memory.turn_context import infer_turn_context, latest_user_text
from hippocampus.modules.memory.weight_profiles import WeightProfiles
from hippocampus.utils.exceptions import BankNotFoundError
from hippocampus.utils.text_utils import build_idempotency_key

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "v1"
CAPTURE_SOURCE = "openclaw.agent_end"
SKIPPED_PROVIDERS = ("exec-event", "cron-event")


def build_remember_request(turn: TurnContext, content: str, category: MemoryCategory,
                           scope: BankScope, source: str, key_suffix: str) -> RememberRequest:
    memory_type = category_to_memory_type(category)
    return RememberRequest(
        content=content,
        memory_type=memory_type.value,
        confidence=confidence_for_memory_type(memory_type),
        timestamp=turn.timestamp_iso,
        idempotency_key=build_idempotency_key(
            turn.project_id, turn.agent_id, turn.session_id, turn.turn_id, content, key_suffix
        ),
        metadata={
            "schema_version": SCHEMA_VERSION,
            "tenant_id": turn.tenant_id,
            "project_id": turn.project_id,
            "agent_id": turn.agent_id,
            "session_id": turn.session_id,
            "turn_id": turn.turn_id,
            "memory_category": category.value,
            "target_scope": scope.value,
            "source": source,
        },
    )


async def remember_with_recovery(client: MemoryStoreInterface, banks: BankResolver, turn: TurnContext,
                                 scope: BankScope, payload: RememberRequest) -> RememberResponse:
    """Write to the scope's bank; a stale bank id is invalidated, re-resolved and retried once."""
    resolved = await banks.resolve_for_turn(turn)
    bank_id = resolved.for_scope(scope)
    try:
        return await client.remember(bank_id, payload)
    except BankNotFoundError:
        logger.warning(f"[Capture] Bank {bank_id} not found for {scope.value}; invalidating and retrying once")
        banks.invalidate_by_bank_id(bank_id)

    refreshed = await banks.resolve_for_turn(turn)
    return await client.remember(refreshed.for_scope(scope), payload)


class CaptureService:
    """Handler for the host's agent_end event."""

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

    async def handle(self, event: Dict[str, Any], ctx: Optional[Dict[str, Any]] = None) -> None:
        if not event.get("success") or not self.config.auto_capture:
            return

        messages = event.get("messages")
        if not isinstance(messages, list) or not messages:
            return

        provider = (ctx or {}).get("messageProvider")
        if provider in SKIPPED_PROVIDERS:
            logger.debug(f"[Capture] Skipping capture for provider={provider}")
            return

        turn = infer_turn_context(event, ctx)
        if self.on_turn_context:
            self.on_turn_context(turn)

        # Resolution failures propagate to the host
        await self.banks.resolve_for_turn(turn)

        latest_user = latest_user_text(messages)
        extracted = extract_atomic_memories(strip_injected_context(latest_user))

        writes = []
        for content in extracted:
            category = infer_memory_category(content)
            for scope in category_targets(category):
                payload = build_remember_request(turn, content, category, scope, CAPTURE_SOURCE, scope.value)
                writes.append(remember_with_recovery(self.client, self.banks, turn, scope, payload))

        if writes:
            results = await asyncio.gather(*writes, return_exceptions=True)
            failed = [r for r in results if isinstance(r, BaseException)]
            for error in failed:
                logger.warning(f"[Capture] capture write failed: {error}")
            logger.debug(
                f"[Capture] turn={turn.turn_id} stored {len(results) - len(failed)}/{len(results)} memories"
            )

        if latest_user:
            self.weight_profiles.ingest_correction_signal(turn, latest_user)
