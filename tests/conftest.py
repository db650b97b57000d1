"""
Root pytest configuration.

Puts the project root on sys.path and provides the fixtures shared by the
unit suites: a turn identity, a parsed config, a mocked memory store and a
factory for recalled memories / wire results.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

project_dir = Path(__file__).parent.parent
if str(project_dir) not in sys.path:
    sys.path.insert(0, str(project_dir))

from hippocampus.config.settings import HippocampusConfig  # noqa: E402
from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface  # noqa: E402
from hippocampus.core.types.common_types import (  # noqa: E402
    BankResponse,
    BankScope,
    ListBanksResponse,
    MemoryRecordResponse,
    MemoryResultResponse,
    RecallResponse,
    RecalledMemory,
    RememberResponse,
    TurnContext,
)


@pytest.fixture
def turn():
    return TurnContext(
        tenant_id="tenant-1",
        project_id="proj-a",
        agent_id="agent-x",
        session_id="sess-1",
        turn_id="turn-1",
        timestamp_iso="2026-01-01T00:00:00.000Z",
    )


@pytest.fixture
def config():
    return HippocampusConfig(api_key="test-key")


@pytest.fixture
def mock_client():
    """Memory store with no banks; creates return predictable ids."""
    client = AsyncMock(spec=MemoryStoreInterface)
    client.list_banks.return_value = ListBanksResponse(banks=[], total=0)

    async def create_bank(payload):
        role = payload.metadata["routing_role"]
        return BankResponse(id=f"created-{role}", name=payload.name, metadata=payload.metadata)

    client.create_bank.side_effect = create_bank
    client.recall.return_value = RecallResponse(memories=[])
    client.remember.return_value = RememberResponse(memory_id="m-1")
    client.delete_memory.return_value = True
    return client


@pytest.fixture
def make_memory():
    def _make(id, content, score=0.5, scope=BankScope.PRIVATE, **kwargs):
        return RecalledMemory(
            id=id,
            content=content,
            timestamp=kwargs.pop("timestamp", "2026-01-01T00:00:00Z"),
            score=score,
            bank_id=kwargs.pop("bank_id", f"bank-{scope.value}"),
            bank_scope=scope,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_result():
    def _make(id, content, score=0.5, bank_id="bank", provenance=None, **scores):
        return MemoryResultResponse(
            memory=MemoryRecordResponse(
                id=id,
                content=content,
                bank_id=bank_id,
                timestamp="2026-01-01T00:00:00Z",
                provenance=provenance,
            ),
            score=score,
            **scores,
        )
    return _make
