# hippocampus/core/interfaces/memory_store_interface.py
from abc import ABC, abstractmethod

from hippocampus.core.types.common_types import (
    BankResponse,
    CreateBankRequest,
    ListBanksResponse,
    RecallRequest,
    RecallResponse,
    RememberRequest,
    RememberResponse,
)


class MemoryStoreInterface(ABC):
    """
    Abstract Base Class for the remote memory store.

    Every call may suspend. A bank that no longer exists surfaces as
    BankNotFoundError, distinct from other HippocampusHttpError failures, so
    callers can invalidate cached bank ids and retry.
    """

    @abstractmethod
    async def list_banks(self) -> ListBanksResponse:
        """Lists every bank visible to the configured API key."""
        pass

    @abstractmethod
    async def create_bank(self, payload: CreateBankRequest) -> BankResponse:
        """Creates a bank and returns it (including its new id)."""
        pass

    @abstractmethod
    async def recall(self, bank_id: str, payload: RecallRequest) -> RecallResponse:
        """
        Retrieves memories from a bank.

        Args:
            bank_id: Target bank.
            payload: Query plus per-dimension weights and result count.

        Returns:
            Scored memories, best first.
        """
        pass

    @abstractmethod
    async def remember(self, bank_id: str, payload: RememberRequest) -> RememberResponse:
        """Stores one memory in a bank."""
        pass

    @abstractmethod
    async def delete_memory(self, bank_id: str, memory_id: str) -> bool:
        """Deletes one memory. Returns True once the store acknowledged it."""
        pass
