# hippocampus/services/memory_tools.py
import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface
from hippocampus.core.types.common_types import (
    BankScope,
    MemoryCategory,
    RecallRequest,
    ResolvedBanks,
    TurnContext,
)
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.modules.memory.capture_service import build_remember_request, remember_with_recovery
from hippocampus.modules.memory.memory_heuristics import category_targets, compact_text, infer_memory_category
from hippocampus.modules.memory.weight_profiles import DEFAULT_PROFILE
from hippocampus.utils.exceptions import BankNotFoundError
from hippocampus.utils.text_utils import clamp
from hippocampus.utils.tool_definitions import FORGET_TOOL, PROFILE_TOOL, SEARCH_TOOL, STORE_TOOL

logger = logging.getLogger(__name__)

STORE_SOURCE = "openclaw.tool.store"
DEFAULT_SEARCH_LIMIT = 5
PROFILE_RECALL_K = 12
PROFILE_SECTION_LIMIT = 10
DEFAULT_PROFILE_QUERY = "user preferences project decisions recent context"

ToolResult = Dict[str, Any]
T = TypeVar("T")


def _text_result(text: str, details: Optional[Dict[str, Any]] = None) -> ToolResult:
    result: ToolResult = {"content": [{"type": "text", "text": text}]}
    if details is not None:
        result["details"] = details
    return result


def _scopes_for(scope: Any) -> List[BankScope]:
    if scope == BankScope.SHARED.value:
        return [BankScope.SHARED]
    if scope == BankScope.PRIVATE.value:
        return [BankScope.PRIVATE]
    return [BankScope.PRIVATE, BankScope.SHARED]


def _parse_limit(value: Any) -> int:
    try:
        limit = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SEARCH_LIMIT
    if math.isnan(limit):
        return DEFAULT_SEARCH_LIMIT
    return int(clamp(limit, 1, 50))


class MemoryTools:
    """
    Agent-callable memory tools: search, store, forget and profile.

    Each call works against the banks of the most recent turn seen by the
    hooks (get_turn_context supplies it).
    """

    def __init__(self, client: MemoryStoreInterface, banks: BankResolver,
                 get_turn_context: Callable[[], TurnContext]):
        self.client = client
        self.banks = banks
        self.get_turn_context = get_turn_context

    def definitions(self) -> List[Dict[str, Any]]:
        """Tool definitions with an execute(tool_call_id, params) coroutine attached."""
        handlers = [
            (SEARCH_TOOL, self.search),
            (STORE_TOOL, self.store),
            (FORGET_TOOL, self.forget),
            (PROFILE_TOOL, self.profile),
        ]
        return [{**definition, "execute": self._executor(handler)} for definition, handler in handlers]

    @staticmethod
    def _executor(handler: Callable[[Dict[str, Any]], Awaitable[ToolResult]]):
        async def execute(tool_call_id: str, params: Optional[Dict[str, Any]] = None) -> ToolResult:
            logger.debug(f"[MemoryTools] {handler.__name__} call={tool_call_id}")
            return await handler(params or {})
        return execute

    async def _resolve(self, turn: TurnContext) -> Optional[ResolvedBanks]:
        try:
            return await self.banks.resolve_for_turn(turn)
        except Exception as e:
            logger.warning(f"[MemoryTools] Bank resolution failed: {e}")
            return None

    async def _on_bank(self, turn: TurnContext, scope: BankScope, bank_id: str,
                       call: Callable[[str], Awaitable[T]]) -> T:
        """Run call(bank_id); a stale bank id is invalidated, re-resolved and retried once."""
        try:
            return await call(bank_id)
        except BankNotFoundError:
            logger.warning(f"[MemoryTools] Bank {bank_id} not found for {scope.value}; invalidating and retrying once")
            self.banks.invalidate_by_bank_id(bank_id)

        refreshed = await self.banks.resolve_for_turn(turn)
        return await call(refreshed.for_scope(scope))

    async def search(self, params: Dict[str, Any]) -> ToolResult:
        query = str(params.get("query") or "").strip()
        if not query:
            return _text_result("Search query is required.")

        limit = _parse_limit(params.get("limit", DEFAULT_SEARCH_LIMIT))
        scopes = _scopes_for(params.get("scope"))

        turn = self.get_turn_context()
        resolved = await self._resolve(turn)
        if resolved is None:
            return _text_result("Memory search is unavailable: could not resolve memory banks.")

        per_scope = max(limit, math.ceil(limit * 2 / len(scopes)))
        payload = RecallRequest.for_profile(query=query, k_results=per_scope, profile=DEFAULT_PROFILE)

        best: Dict[str, Dict[str, Any]] = {}
        for scope in scopes:
            bank_id = resolved.for_scope(scope)
            try:
                response = await self._on_bank(
                    turn, scope, bank_id, lambda b: self.client.recall(b, payload)
                )
            except Exception as e:
                logger.warning(f"[MemoryTools] search failed for scope={scope.value} bank_id={bank_id}: {e}")
                continue
            for item in response.memories or []:
                hit = {
                    "id": item.memory.id,
                    "content": item.memory.content,
                    "similarity": item.score or 0.0,
                    "bankId": item.memory.bank_id,
                }
                existing = best.get(hit["id"])
                if existing is None or hit["similarity"] > existing["similarity"]:
                    best[hit["id"]] = hit

        hits = sorted(best.values(), key=lambda h: h["similarity"], reverse=True)[:limit]
        if not hits:
            return _text_result("No relevant memories found.", {"count": 0, "memories": []})

        lines = "\n".join(
            f"{idx}. {hit['content']} ({round(hit['similarity'] * 100)}%)" for idx, hit in enumerate(hits, 1)
        )
        return _text_result(
            f"Found {len(hits)} memories:\n\n{lines}",
            {"count": len(hits), "memories": hits},
        )

    async def store(self, params: Dict[str, Any]) -> ToolResult:
        text = str(params.get("text") or "").strip()
        if not text:
            return _text_result("Nothing to store.")

        turn = self.get_turn_context()
        raw_category = params.get("category")
        try:
            category = MemoryCategory(raw_category) if raw_category else infer_memory_category(text)
        except ValueError:
            category = infer_memory_category(text)

        requested_scope = params.get("scope")
        if requested_scope in (BankScope.SHARED.value, BankScope.PRIVATE.value):
            targets = [BankScope(requested_scope)]
        else:
            targets = category_targets(category)

        if await self._resolve(turn) is None:
            return _text_result("Unable to store memory: could not resolve memory banks.")

        # Failures other than a stale bank propagate to the host
        await asyncio.gather(*[
            remember_with_recovery(
                self.client, self.banks, turn, scope,
                build_remember_request(turn, text, category, scope, STORE_SOURCE, f"tool:{scope.value}"),
            )
            for scope in targets
        ])

        preview = f"{text[:100]}…" if len(text) > 100 else text
        logger.info(f"[MemoryTools] Stored {category.value} memory in {[t.value for t in targets]}")
        return _text_result(
            f'Stored memory: "{preview}"',
            {"category": category.value, "targets": [t.value for t in targets]},
        )

    async def forget(self, params: Dict[str, Any]) -> ToolResult:
        turn = self.get_turn_context()
        resolved = await self._resolve(turn)
        if resolved is None:
            return _text_result("Unable to forget memory: could not resolve memory banks.")

        targets = [(scope, resolved.for_scope(scope)) for scope in _scopes_for(params.get("scope"))]

        memory_id = params.get("memoryId")
        if memory_id:
            for scope, bank_id in targets:
                try:
                    await self._on_bank(
                        turn, scope, bank_id, lambda b: self.client.delete_memory(b, str(memory_id))
                    )
                    return _text_result("Memory forgotten.")
                except Exception as e:
                    logger.warning(f"[MemoryTools] forget by id failed bank_id={bank_id}: {e}")
            return _text_result("Unable to forget memory id in selected scope.")

        query = str(params.get("query") or "").strip()
        if not query:
            return _text_result("Provide memoryId or query to forget.")

        payload = RecallRequest.for_profile(query=query, k_results=1, profile=DEFAULT_PROFILE, k_per_strategy=6)
        for scope, bank_id in targets:
            try:
                content = await self._on_bank(turn, scope, bank_id, lambda b: self._forget_first(b, payload))
                if content is None:
                    continue
                return _text_result(f'Forgot: "{compact_text(content, 120)}"')
            except Exception as e:
                logger.warning(f"[MemoryTools] forget by query failed bank_id={bank_id}: {e}")

        return _text_result("No matching memory found to forget.")

    async def _forget_first(self, bank_id: str, payload: RecallRequest) -> Optional[str]:
        response = await self.client.recall(bank_id, payload)
        if not response.memories:
            return None
        first = response.memories[0].memory
        await self.client.delete_memory(first.bank_id or bank_id, first.id)
        return first.content

    async def profile(self, params: Dict[str, Any]) -> ToolResult:
        turn = self.get_turn_context()
        resolved = await self._resolve(turn)
        if resolved is None:
            return _text_result("Profile is unavailable: could not resolve memory banks.")

        query = str(params.get("query") or "").strip() or DEFAULT_PROFILE_QUERY
        payload = RecallRequest.for_profile(query=query, k_results=PROFILE_RECALL_K, profile=DEFAULT_PROFILE)

        # content -> best score
        best: Dict[str, float] = {}
        for scope in _scopes_for(params.get("scope")):
            bank_id = resolved.for_scope(scope)
            try:
                response = await self._on_bank(
                    turn, scope, bank_id, lambda b: self.client.recall(b, payload)
                )
            except Exception as e:
                logger.warning(f"[MemoryTools] profile recall failed bank_id={bank_id}: {e}")
                continue
            for item in response.memories or []:
                content = item.memory.content.strip()
                score = item.score or 0.0
                if content and (content not in best or score > best[content]):
                    best[content] = score

        static_facts: List[str] = []
        dynamic_facts: List[str] = []
        for content, _ in sorted(best.items(), key=lambda kv: kv[1], reverse=True):
            category = infer_memory_category(content)
            if category in (MemoryCategory.PREFERENCE, MemoryCategory.PROJECT_DECISION):
                static_facts.append(content)
            else:
                dynamic_facts.append(content)

        if not static_facts and not dynamic_facts:
            return _text_result("No profile information available yet.")

        sections = []
        if static_facts:
            sections.append(
                "## User Profile (Persistent)\n"
                + "\n".join(f"- {s}" for s in static_facts[:PROFILE_SECTION_LIMIT])
            )
        if dynamic_facts:
            sections.append(
                "## Recent Context\n"
                + "\n".join(f"- {s}" for s in dynamic_facts[:PROFILE_SECTION_LIMIT])
            )

        return _text_result(
            "\n\n".join(sections),
            {"staticCount": len(static_facts), "dynamicCount": len(dynamic_facts)},
        )
