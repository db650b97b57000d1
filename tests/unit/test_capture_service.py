"""
Unit tests for CaptureService.
"""

from unittest.mock import MagicMock

import pytest

from hippocampus.config.settings import HippocampusConfig
from hippocampus.core.types.common_types import BankScope, MemoryCategory, RememberResponse
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.modules.memory.capture_service import (
    CAPTURE_SOURCE,
    CaptureService,
    build_remember_request,
)
from hippocampus.modules.memory.weight_profiles import WeightProfiles
from hippocampus.utils.exceptions import BankNotFoundError
from hippocampus.utils.text_utils import build_idempotency_key

CTX = {"projectId": "proj-a", "agentId": "agent-x", "sessionId": "s-1"}


def agent_end(text, success=True, turn_id="t-1"):
    return {
        "success": success,
        "turnId": turn_id,
        "messages": [
            {"role": "user", "content": "earlier message"},
            {"role": "assistant", "content": "ok"},
            {"role": "user", "content": text},
        ],
    }


@pytest.fixture
def profiles():
    return MagicMock(spec=WeightProfiles)


@pytest.fixture
def service(mock_client, config, profiles):
    return CaptureService(mock_client, config, BankResolver(mock_client, config), profiles)


def written(mock_client):
    return [(call.args[0], call.args[1]) for call in mock_client.remember.await_args_list]


class TestSkips:
    """Turns that never reach the store."""

    @pytest.mark.asyncio
    async def test_unsuccessful_turn(self, service, mock_client):
        await service.handle(agent_end("I always use tabs", success=False), CTX)

        mock_client.list_banks.assert_not_awaited()
        mock_client.remember.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auto_capture_disabled(self, mock_client, profiles):
        config = HippocampusConfig(api_key="k", auto_capture=False)
        service = CaptureService(mock_client, config, BankResolver(mock_client, config), profiles)

        await service.handle(agent_end("I always use tabs"), CTX)

        mock_client.remember.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_messages(self, service, mock_client):
        await service.handle({"success": True, "messages": []}, CTX)

        mock_client.list_banks.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", ["exec-event", "cron-event"])
    async def test_system_providers_are_skipped(self, service, mock_client, provider):
        await service.handle(agent_end("I always use tabs"), {**CTX, "messageProvider": provider})

        mock_client.list_banks.assert_not_awaited()
        mock_client.remember.assert_not_awaited()


class TestWrites:
    """Extraction, routing and payloads."""

    @pytest.mark.asyncio
    async def test_preference_goes_to_private_bank_as_opinion(self, service, mock_client):
        await service.handle(agent_end("I always use tabs"), CTX)

        [(bank_id, payload)] = written(mock_client)
        assert bank_id == "created-agent_private"
        assert payload.content == "I always use tabs."
        assert payload.memory_type == "opinion"
        assert payload.confidence == pytest.approx(0.82)
        assert payload.metadata["target_scope"] == "private"
        assert payload.metadata["memory_category"] == "preference"
        assert payload.metadata["source"] == CAPTURE_SOURCE
        assert payload.metadata["schema_version"] == "v1"

    @pytest.mark.asyncio
    async def test_project_decision_goes_to_shared_bank_only(self, service, mock_client):
        await service.handle(agent_end("Project decision: use Postgres instead of MySQL"), CTX)

        [(bank_id, payload)] = written(mock_client)
        assert bank_id == "created-shared"
        assert payload.memory_type == "world"
        assert payload.confidence is None
        assert payload.metadata["target_scope"] == "shared"

    @pytest.mark.asyncio
    async def test_only_latest_user_message_is_captured(self, service, mock_client):
        await service.handle(agent_end("Marker ABC123 is active"), CTX)

        contents = [payload.content for _, payload in written(mock_client)]
        assert contents == ["Marker ABC123 is active."]

    @pytest.mark.asyncio
    async def test_injected_context_is_stripped(self, service, mock_client):
        text = "<hippocampus-context>\nRecalled: the sky is green\n</hippocampus-context>\nI always use tabs"

        await service.handle(agent_end(text), CTX)

        assert [payload.content for _, payload in written(mock_client)] == ["I always use tabs."]

    @pytest.mark.asyncio
    async def test_content_blocks_are_read(self, service, mock_client):
        event = agent_end("")
        event["messages"][-1]["content"] = [{"type": "text", "text": "Marker ABC123 is active"}]

        await service.handle(event, CTX)

        assert mock_client.remember.await_count == 1

    @pytest.mark.asyncio
    async def test_idempotency_keys_are_deterministic(self, service, mock_client):
        await service.handle(agent_end("Marker ABC123 is active"), CTX)
        await service.handle(agent_end("Marker ABC123 is active"), CTX)

        first, second = [payload.idempotency_key for _, payload in written(mock_client)]
        assert first == second
        assert first == build_idempotency_key(
            "proj-a", "agent-x", "s-1", "t-1", "Marker ABC123 is active.", "private"
        )

    @pytest.mark.asyncio
    async def test_question_stores_nothing(self, service, mock_client):
        await service.handle(agent_end("What is our deploy target?"), CTX)

        mock_client.remember.assert_not_awaited()


class TestFailures:
    """Recovery and error surfacing."""

    @pytest.mark.asyncio
    async def test_stale_bank_is_reresolved_and_retried(self, service, mock_client):
        mock_client.remember.side_effect = [
            BankNotFoundError("gone", 404, "POST", "/v1/banks/created-agent_private/memories"),
            RememberResponse(memory_id="m-2"),
        ]

        await service.handle(agent_end("Marker ABC123 is active"), CTX)

        assert mock_client.remember.await_count == 2
        assert mock_client.list_banks.await_count == 2

    @pytest.mark.asyncio
    async def test_write_failures_are_logged_not_raised(self, service, mock_client, profiles):
        mock_client.remember.side_effect = RuntimeError("store down")

        await service.handle(agent_end("Marker ABC123 is active"), CTX)

        profiles.ingest_correction_signal.assert_called_once()

    @pytest.mark.asyncio
    async def test_resolution_failure_propagates(self, service, mock_client):
        mock_client.list_banks.side_effect = RuntimeError("store down")

        with pytest.raises(RuntimeError):
            await service.handle(agent_end("Marker ABC123 is active"), CTX)


class TestCorrectionSignal:
    """The latest user message always feeds the weight profile."""

    @pytest.mark.asyncio
    async def test_signal_ingested_even_when_nothing_extracted(self, service, mock_client, profiles):
        text = "That's wrong, when did it change?"

        await service.handle(agent_end(text), CTX)

        mock_client.remember.assert_not_awaited()
        turn, ingested = profiles.ingest_correction_signal.call_args.args
        assert ingested == text
        assert turn.agent_id == "agent-x"

    @pytest.mark.asyncio
    async def test_turn_context_callback(self, mock_client, config, profiles):
        seen = MagicMock()
        service = CaptureService(mock_client, config, BankResolver(mock_client, config), profiles,
                                 on_turn_context=seen)

        await service.handle(agent_end("Marker ABC123 is active"), CTX)

        assert seen.call_args.args[0].turn_id == "t-1"


class TestBuildRememberRequest:
    """Payload construction."""

    def test_metadata_and_key(self, turn):
        payload = build_remember_request(
            turn, "Canonical ORM is Prisma.", MemoryCategory.PROJECT_DECISION,
            BankScope.SHARED, "openclaw.tool.store", "tool:shared",
        )

        assert payload.timestamp == turn.timestamp_iso
        assert payload.metadata == {
            "schema_version": "v1",
            "tenant_id": "tenant-1",
            "project_id": "proj-a",
            "agent_id": "agent-x",
            "session_id": "sess-1",
            "turn_id": "turn-1",
            "memory_category": "project_decision",
            "target_scope": "shared",
            "source": "openclaw.tool.store",
        }
        assert payload.idempotency_key.startswith("oc:proj-a:agent-x:sess-1:turn-1:")
        assert len(payload.idempotency_key.rsplit(":", 1)[1]) == 12
