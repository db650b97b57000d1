"""
Bank Resolver - maps (project, agent) to the shared and private bank ids

Features:
- TTL cache (default 5 min) so steady-state turns never touch the network
- Reverse index bank_id -> cache keys for targeted invalidation on 404
- Singleflight: concurrent first-time resolves for the same (project, agent)
  share one list/create round trip
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from hippocampus.config.settings import HippocampusConfig
from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface
from hippocampus.core.types.common_types import (
    BankResponse,
    CreateBankRequest,
    DispositionProfile,
    ResolvedBanks,
    TurnContext,
)
from hippocampus.utils.text_utils import render_template

logger = logging.getLogger(__name__)

SOURCE_TAG = "openclaw-hipocampus"
DEFAULT_CACHE_TTL_SECONDS = 300

ROLE_SHARED = "shared"
ROLE_AGENT_PRIVATE = "agent_private"


@dataclass
class CacheEntry:
    bank_id: str
    expires_at: float


class BankResolver:
    """
    Resolves the bank pair for a turn, creating banks on first use.

    Cache and in-flight bookkeeping is plain dict mutation between awaits;
    everything runs on one event loop.
    """

    def __init__(self, client: MemoryStoreInterface, config: HippocampusConfig,
                 cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS):
        self.client = client
        self.config = config
        self.cache_ttl = cache_ttl_seconds
        self._cache: Dict[str, CacheEntry] = {}
        self._bank_id_to_key: Dict[str, Set[str]] = {}
        self._in_flight: Dict[str, "asyncio.Task[ResolvedBanks]"] = {}

    async def resolve_for_turn(self, turn: TurnContext) -> ResolvedBanks:
        cached = self._cached_pair(turn)
        if cached is not None:
            return cached

        inflight_key = f"{turn.project_id}::{turn.agent_id}"
        task = self._in_flight.get(inflight_key)
        if task is None:
            # Registered before the first await so later callers join it
            task = asyncio.ensure_future(self._resolve(turn))
            self._in_flight[inflight_key] = task
            task.add_done_callback(lambda t, k=inflight_key: self._clear_in_flight(k, t))
        else:
            logger.debug(f"[BankResolver] Joining in-flight resolution for {inflight_key}")

        # A cancelled waiter must not cancel the shared resolution
        return await asyncio.shield(task)

    def invalidate_for_turn(self, turn: TurnContext) -> None:
        for key in (self._shared_key(turn), self._private_key(turn)):
            self._drop_key(key)

    def invalidate_by_bank_id(self, bank_id: str) -> None:
        # One bank can back several projects through the pick fallbacks
        keys = self._bank_id_to_key.pop(bank_id, None)
        if not keys:
            return
        for key in sorted(keys):
            entry = self._cache.get(key)
            if entry is not None and entry.bank_id == bank_id:
                del self._cache[key]
        logger.info(f"[BankResolver] Invalidated cached bank {bank_id} ({', '.join(sorted(keys))})")

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics for monitoring"""
        now = time.time()
        active_entries = sum(1 for e in self._cache.values() if e.expires_at > now)
        return {
            "total_entries": len(self._cache),
            "active_entries": active_entries,
            "expired_entries": len(self._cache) - active_entries,
            "in_flight": len(self._in_flight),
            "cache_ttl_seconds": self.cache_ttl,
        }

    def _clear_in_flight(self, key: str, task: "asyncio.Task[ResolvedBanks]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[BankResolver] Resolution failed for {key}: {task.exception()}")

    async def _resolve(self, turn: TurnContext) -> ResolvedBanks:
        listed = await self.client.list_banks()
        banks = listed.banks or []

        shared_bank_id = self._pick_shared_bank_id(banks, turn)
        if shared_bank_id is None:
            shared_bank_id = (await self._create_shared_bank(turn)).id

        private_bank_id = self._pick_private_bank_id(banks, turn)
        if private_bank_id is None:
            private_bank_id = (await self._create_private_bank(turn)).id

        # Only cache once both ids are known
        self._set_cache(self._shared_key(turn), shared_bank_id)
        self._set_cache(self._private_key(turn), private_bank_id)
        logger.debug(
            f"[BankResolver] Resolved project={turn.project_id} agent={turn.agent_id} "
            f"shared={shared_bank_id} private={private_bank_id}"
        )
        return ResolvedBanks(shared_bank_id=shared_bank_id, private_bank_id=private_bank_id)

    def _cached_pair(self, turn: TurnContext) -> Optional[ResolvedBanks]:
        now = time.time()
        shared = self._cache.get(self._shared_key(turn))
        private = self._cache.get(self._private_key(turn))
        if shared and private and shared.expires_at > now and private.expires_at > now:
            return ResolvedBanks(shared_bank_id=shared.bank_id, private_bank_id=private.bank_id)
        return None

    def _set_cache(self, key: str, bank_id: str) -> None:
        previous = self._cache.get(key)
        if previous is not None and previous.bank_id != bank_id:
            self._unindex(previous.bank_id, key)
        self._cache[key] = CacheEntry(bank_id=bank_id, expires_at=time.time() + self.cache_ttl)
        self._bank_id_to_key.setdefault(bank_id, set()).add(key)

    def _drop_key(self, key: str) -> None:
        entry = self._cache.pop(key, None)
        if entry is not None:
            self._unindex(entry.bank_id, key)

    def _unindex(self, bank_id: str, key: str) -> None:
        keys = self._bank_id_to_key.get(bank_id)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._bank_id_to_key[bank_id]

    @staticmethod
    def _shared_key(turn: TurnContext) -> str:
        return f"{turn.project_id}::shared"

    @staticmethod
    def _private_key(turn: TurnContext) -> str:
        return f"{turn.project_id}::agent::{turn.agent_id}"

    @staticmethod
    def _pick(candidates: List[BankResponse], turn: TurnContext) -> Optional[str]:
        if not candidates:
            return None
        for bank in candidates:
            if bank.meta("project_id") == turn.project_id:
                return bank.id
        for bank in candidates:
            if bank.meta("source") == SOURCE_TAG:
                return bank.id
        return candidates[0].id

    def _pick_shared_bank_id(self, banks: List[BankResponse], turn: TurnContext) -> Optional[str]:
        shared = [b for b in banks if b.meta("routing_role") == ROLE_SHARED]
        return self._pick(shared, turn)

    def _pick_private_bank_id(self, banks: List[BankResponse], turn: TurnContext) -> Optional[str]:
        private = [
            b for b in banks
            if b.meta("routing_role") == ROLE_AGENT_PRIVATE and b.meta("agent_id") == turn.agent_id
        ]
        return self._pick(private, turn)

    def _template_vars(self, turn: TurnContext) -> Dict[str, str]:
        return {
            "tenant_id": turn.tenant_id,
            "project_id": turn.project_id,
            "agent_id": turn.agent_id,
            "session_id": turn.session_id,
        }

    async def _create_shared_bank(self, turn: TurnContext) -> BankResponse:
        logger.info(f"[BankResolver] Creating shared bank for project={turn.project_id} tenant={turn.tenant_id}")
        return await self.client.create_bank(CreateBankRequest(
            name=render_template(self.config.shared_bank_name_template, self._template_vars(turn)),
            background="OpenClaw shared project memory",
            disposition=DispositionProfile(skepticism=3, literalism=3, empathy=3),
            metadata={
                "routing_role": ROLE_SHARED,
                "project_id": turn.project_id,
                "tenant_id": turn.tenant_id,
                "source": SOURCE_TAG,
            },
        ))

    async def _create_private_bank(self, turn: TurnContext) -> BankResponse:
        logger.info(f"[BankResolver] Creating private bank for project={turn.project_id} agent={turn.agent_id}")
        return await self.client.create_bank(CreateBankRequest(
            name=render_template(self.config.agent_bank_name_template, self._template_vars(turn)),
            background="OpenClaw private agent memory",
            disposition=DispositionProfile(skepticism=3, literalism=3, empathy=3),
            metadata={
                "routing_role": ROLE_AGENT_PRIVATE,
                "project_id": turn.project_id,
                "tenant_id": turn.tenant_id,
                "agent_id": turn.agent_id,
                "source": SOURCE_TAG,
            },
        ))
