"""
Unit tests for the agent-callable memory tools.
"""

import pytest

from hippocampus.core.types.common_types import BankResponse, ListBanksResponse, RecallResponse
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.services.memory_tools import STORE_SOURCE, MemoryTools, _parse_limit
from hippocampus.utils.exceptions import BankNotFoundError


@pytest.fixture
def tools(mock_client, config, turn):
    return MemoryTools(mock_client, BankResolver(mock_client, config), lambda: turn)


@pytest.fixture
def refreshed_listing(mock_client):
    """First listing is empty (banks get created); the next one returns replacement banks."""
    mock_client.list_banks.side_effect = [
        ListBanksResponse(banks=[]),
        ListBanksResponse(banks=[
            BankResponse(id="shared-2", metadata={"routing_role": "shared", "project_id": "proj-a"}),
            BankResponse(id="private-2", metadata={
                "routing_role": "agent_private",
                "project_id": "proj-a",
                "agent_id": "agent-x",
            }),
        ]),
    ]
    return mock_client


def stale(bank_id):
    return BankNotFoundError("bank not found", 404, "POST", f"/v1/banks/{bank_id}/recall")


def text_of(result):
    return result["content"][0]["text"]


def recall_by_bank(results):
    async def recall(bank_id, payload):
        outcome = results.get(bank_id, [])
        if isinstance(outcome, Exception):
            raise outcome
        return RecallResponse(memories=outcome)
    return recall


class TestDefinitions:
    """Registration surface."""

    def test_four_tools_with_executors(self, tools):
        definitions = tools.definitions()

        assert [d["name"] for d in definitions] == [
            "hippocampus_search",
            "hippocampus_store",
            "hippocampus_forget",
            "hippocampus_profile",
        ]
        assert all(callable(d["execute"]) for d in definitions)
        assert all("parameters" in d for d in definitions)

    @pytest.mark.asyncio
    async def test_execute_dispatches_to_handler(self, tools):
        search = tools.definitions()[0]

        result = await search["execute"]("call-1", {"query": "  "})

        assert text_of(result) == "Search query is required."

    @pytest.mark.parametrize("raw,expected", [
        (None, 5),
        ("abc", 5),
        ("7", 7),
        (0, 1),
        (100, 50),
        (3.9, 3),
    ])
    def test_parse_limit(self, raw, expected):
        assert _parse_limit(raw) == expected


class TestSearch:
    """hippocampus_search."""

    @pytest.mark.asyncio
    async def test_searches_both_banks_and_dedupes(self, tools, mock_client, make_result):
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": [
                make_result("m1", "User prefers dark mode.", score=0.6, bank_id="created-agent_private"),
                make_result("m2", "Marker ABC123 is active.", score=0.5, bank_id="created-agent_private"),
            ],
            "created-shared": [
                make_result("m1", "User prefers dark mode.", score=0.9, bank_id="created-shared"),
            ],
        })

        result = await tools.search({"query": "dark mode", "limit": 3})

        assert mock_client.recall.await_count == 2
        assert mock_client.recall.await_args_list[0].args[1].k_results == 3
        assert text_of(result) == (
            "Found 2 memories:\n\n"
            "1. User prefers dark mode. (90%)\n"
            "2. Marker ABC123 is active. (50%)"
        )
        assert result["details"]["count"] == 2
        assert result["details"]["memories"][0] == {
            "id": "m1",
            "content": "User prefers dark mode.",
            "similarity": 0.9,
            "bankId": "created-shared",
        }

    @pytest.mark.asyncio
    async def test_single_scope_asks_for_more_per_bank(self, tools, mock_client):
        await tools.search({"query": "q", "limit": 3, "scope": "shared"})

        [call] = mock_client.recall.await_args_list
        assert call.args[0] == "created-shared"
        assert call.args[1].k_results == 6

    @pytest.mark.asyncio
    async def test_limit_caps_hits(self, tools, mock_client, make_result):
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": [make_result(f"m{i}", f"note {i}", score=0.5) for i in range(4)],
        })

        result = await tools.search({"query": "q", "limit": 2, "scope": "private"})

        assert result["details"]["count"] == 2

    @pytest.mark.asyncio
    async def test_no_hits(self, tools):
        result = await tools.search({"query": "nothing"})

        assert text_of(result) == "No relevant memories found."
        assert result["details"] == {"count": 0, "memories": []}

    @pytest.mark.asyncio
    async def test_failing_bank_is_skipped(self, tools, mock_client, make_result):
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": RuntimeError("down"),
            "created-shared": [make_result("s1", "Canonical ORM is Prisma.", score=0.7)],
        })

        result = await tools.search({"query": "orm"})

        assert result["details"]["count"] == 1

    @pytest.mark.asyncio
    async def test_stale_bank_is_invalidated_and_retried(self, tools, refreshed_listing, make_result):
        mock_client = refreshed_listing
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": stale("created-agent_private"),
            "private-2": [make_result("m1", "Marker ABC123 is active.", score=0.8, bank_id="private-2")],
        })

        result = await tools.search({"query": "marker"})
        again = await tools.search({"query": "marker"})

        assert mock_client.list_banks.await_count == 2
        assert [c.args[0] for c in mock_client.recall.await_args_list] == [
            "created-agent_private",
            "private-2",
            "created-shared",
            "private-2",
            "shared-2",
        ]
        assert result["details"]["count"] == 1
        assert again["details"]["count"] == 1

    @pytest.mark.asyncio
    async def test_stale_bank_retried_only_once(self, tools, refreshed_listing):
        mock_client = refreshed_listing
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": stale("created-agent_private"),
            "private-2": stale("private-2"),
        })

        result = await tools.search({"query": "marker", "scope": "private"})

        assert mock_client.recall.await_count == 2
        assert mock_client.list_banks.await_count == 2
        assert text_of(result) == "No relevant memories found."

    @pytest.mark.asyncio
    async def test_resolution_failure(self, tools, mock_client):
        mock_client.list_banks.side_effect = RuntimeError("down")

        result = await tools.search({"query": "q"})

        assert text_of(result) == "Memory search is unavailable: could not resolve memory banks."


class TestStore:
    """hippocampus_store."""

    @pytest.mark.asyncio
    async def test_category_routes_to_shared(self, tools, mock_client):
        result = await tools.store({"text": "Canonical ORM is Prisma"})

        [call] = mock_client.remember.await_args_list
        bank_id, payload = call.args
        assert bank_id == "created-shared"
        assert payload.metadata["source"] == STORE_SOURCE
        assert payload.metadata["memory_category"] == "project_decision"
        assert text_of(result) == 'Stored memory: "Canonical ORM is Prisma"'
        assert result["details"] == {"category": "project_decision", "targets": ["shared"]}

    @pytest.mark.asyncio
    async def test_explicit_scope_overrides_category(self, tools, mock_client):
        result = await tools.store({"text": "Canonical ORM is Prisma", "scope": "private"})

        assert mock_client.remember.await_args.args[0] == "created-agent_private"
        assert result["details"]["targets"] == ["private"]

    @pytest.mark.asyncio
    async def test_explicit_category(self, tools, mock_client):
        result = await tools.store({"text": "Tabs everywhere", "category": "preference"})

        payload = mock_client.remember.await_args.args[1]
        assert payload.memory_type == "opinion"
        assert result["details"]["category"] == "preference"

    @pytest.mark.asyncio
    async def test_unknown_category_is_inferred(self, tools, mock_client):
        result = await tools.store({"text": "Marker ABC123 is active", "category": "gossip"})

        assert result["details"]["category"] == "fact"

    @pytest.mark.asyncio
    async def test_long_text_preview_is_truncated(self, tools):
        text = "x" * 150

        result = await tools.store({"text": text})

        assert text_of(result) == f'Stored memory: "{"x" * 100}…"'

    @pytest.mark.asyncio
    async def test_empty_text(self, tools, mock_client):
        result = await tools.store({"text": "   "})

        assert text_of(result) == "Nothing to store."
        mock_client.remember.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, tools, mock_client):
        mock_client.remember.side_effect = RuntimeError("store down")

        with pytest.raises(RuntimeError):
            await tools.store({"text": "Marker ABC123 is active"})


class TestForget:
    """hippocampus_forget."""

    @pytest.mark.asyncio
    async def test_by_id_deletes_in_first_bank(self, tools, mock_client):
        result = await tools.forget({"memoryId": "m-7"})

        mock_client.delete_memory.assert_awaited_once_with("created-agent_private", "m-7")
        assert text_of(result) == "Memory forgotten."

    @pytest.mark.asyncio
    async def test_by_id_falls_through_to_next_bank(self, tools, mock_client):
        mock_client.delete_memory.side_effect = [RuntimeError("not here"), True]

        result = await tools.forget({"memoryId": "m-7"})

        assert [c.args[0] for c in mock_client.delete_memory.await_args_list] == [
            "created-agent_private",
            "created-shared",
        ]
        assert text_of(result) == "Memory forgotten."

    @pytest.mark.asyncio
    async def test_by_id_not_found_anywhere(self, tools, mock_client):
        mock_client.delete_memory.side_effect = RuntimeError("not here")

        result = await tools.forget({"memoryId": "m-7", "scope": "shared"})

        assert text_of(result) == "Unable to forget memory id in selected scope."
        assert mock_client.delete_memory.await_count == 1

    @pytest.mark.asyncio
    async def test_by_query_deletes_top_match(self, tools, mock_client, make_result):
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": [make_result("m3", "Marker ABC123 is active.", bank_id="bank-x")],
        })

        result = await tools.forget({"query": "marker"})

        payload = mock_client.recall.await_args_list[0].args[1]
        assert payload.k_results == 1
        assert payload.k_per_strategy == 6
        mock_client.delete_memory.assert_awaited_once_with("bank-x", "m3")
        assert text_of(result) == 'Forgot: "Marker ABC123 is active."'

    @pytest.mark.asyncio
    async def test_by_id_stale_bank_is_refreshed(self, tools, refreshed_listing):
        mock_client = refreshed_listing
        mock_client.delete_memory.side_effect = [stale("created-agent_private"), True]

        result = await tools.forget({"memoryId": "m-7", "scope": "private"})

        assert [c.args for c in mock_client.delete_memory.await_args_list] == [
            ("created-agent_private", "m-7"),
            ("private-2", "m-7"),
        ]
        assert mock_client.list_banks.await_count == 2
        assert text_of(result) == "Memory forgotten."

    @pytest.mark.asyncio
    async def test_by_query_stale_bank_is_refreshed(self, tools, refreshed_listing, make_result):
        mock_client = refreshed_listing
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": stale("created-agent_private"),
            "private-2": [make_result("m3", "Marker ABC123 is active.", bank_id="private-2")],
        })

        result = await tools.forget({"query": "marker", "scope": "private"})

        mock_client.delete_memory.assert_awaited_once_with("private-2", "m3")
        assert text_of(result) == 'Forgot: "Marker ABC123 is active."'

    @pytest.mark.asyncio
    async def test_by_query_no_match(self, tools):
        result = await tools.forget({"query": "marker"})

        assert text_of(result) == "No matching memory found to forget."

    @pytest.mark.asyncio
    async def test_requires_id_or_query(self, tools):
        result = await tools.forget({})

        assert text_of(result) == "Provide memoryId or query to forget."


class TestProfile:
    """hippocampus_profile."""

    @pytest.mark.asyncio
    async def test_splits_persistent_and_recent(self, tools, mock_client, make_result):
        mock_client.recall.side_effect = recall_by_bank({
            "created-agent_private": [
                make_result("p1", "I prefer dark mode.", score=0.8),
                make_result("p2", "Marker ABC123 is active.", score=0.6),
            ],
            "created-shared": [
                make_result("s1", "I prefer dark mode.", score=0.9),
                make_result("s2", "Canonical ORM is Prisma.", score=0.7),
            ],
        })

        result = await tools.profile({})

        assert mock_client.recall.await_args_list[0].args[1].k_results == 12
        assert text_of(result) == (
            "## User Profile (Persistent)\n"
            "- I prefer dark mode.\n"
            "- Canonical ORM is Prisma.\n\n"
            "## Recent Context\n"
            "- Marker ABC123 is active."
        )
        assert result["details"] == {"staticCount": 2, "dynamicCount": 1}

    @pytest.mark.asyncio
    async def test_uses_default_query(self, tools, mock_client):
        await tools.profile({"query": "  "})

        assert mock_client.recall.await_args.args[1].query == "user preferences project decisions recent context"

    @pytest.mark.asyncio
    async def test_stale_bank_is_refreshed(self, tools, refreshed_listing, make_result):
        mock_client = refreshed_listing
        mock_client.recall.side_effect = recall_by_bank({
            "created-shared": stale("created-shared"),
            "shared-2": [make_result("s2", "Canonical ORM is Prisma.", score=0.7)],
        })

        result = await tools.profile({"scope": "shared"})

        assert [c.args[0] for c in mock_client.recall.await_args_list] == ["created-shared", "shared-2"]
        assert mock_client.list_banks.await_count == 2
        assert result["details"] == {"staticCount": 1, "dynamicCount": 0}

    @pytest.mark.asyncio
    async def test_nothing_known_yet(self, tools):
        result = await tools.profile({})

        assert text_of(result) == "No profile information available yet."
