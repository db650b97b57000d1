# hippocampus/modules/store/hippocampus_client.py
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from hippocampus.config.settings import HippocampusConfig
from hippocampus.core.interfaces.memory_store_interface import MemoryStoreInterface
from hippocampus.core.types.common_types import (
    BankResponse,
    CreateBankRequest,
    ListBanksResponse,
    MemoryType,
    RecallRequest,
    RecallResponse,
    RememberRequest,
    RememberResponse,
)
from hippocampus.utils.exceptions import BankNotFoundError, HippocampusHttpError
from hippocampus.utils.text_utils import jitter_sleep

logger = logging.getLogger(__name__)

ALLOWED_MEMORY_TYPES = frozenset(t.value for t in MemoryType)
RETRY_BASE_MS = 300


def _segment(value: str) -> str:
    return quote(value, safe="")


class HippocampusClient(MemoryStoreInterface):
    """
    Async HTTP client for the Hippocampus memory API.

    Every call is retried on 408/429/5xx and transport failures with jittered
    backoff. A 404 on the /banks/... path is retried once against /v1/banks/...
    before surfacing as BankNotFoundError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        recall_timeout_ms: int = 10_000,
        remember_timeout_ms: int = 10_000,
        request_retry_attempts: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.recall_timeout = recall_timeout_ms / 1000.0
        self.remember_timeout = remember_timeout_ms / 1000.0
        self.request_retry_attempts = request_retry_attempts
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", "x-api-key": api_key},
            timeout=self.remember_timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: HippocampusConfig,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> "HippocampusClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key or "",
            recall_timeout_ms=config.recall_timeout_ms,
            remember_timeout_ms=config.remember_timeout_ms,
            request_retry_attempts=config.request_retry_attempts,
            transport=transport,
        )

    async def list_banks(self) -> ListBanksResponse:
        body = await self._request_with_path_fallback("GET", "/banks", None, self.remember_timeout)
        return ListBanksResponse.model_validate(body)

    async def create_bank(self, payload: CreateBankRequest) -> BankResponse:
        body = await self._request_with_path_fallback(
            "POST", "/banks", payload.model_dump(exclude_none=True), self.remember_timeout
        )
        return BankResponse.model_validate(body)

    async def recall(self, bank_id: str, payload: RecallRequest) -> RecallResponse:
        body = await self._request_with_path_fallback(
            "POST", f"/banks/{_segment(bank_id)}/recall", payload.model_dump(), self.recall_timeout
        )
        return RecallResponse.model_validate(body)

    async def remember(self, bank_id: str, payload: RememberRequest) -> RememberResponse:
        if payload.memory_type and payload.memory_type not in ALLOWED_MEMORY_TYPES:
            raise ValueError(
                f"Unsupported memory_type '{payload.memory_type}'. "
                f"Allowed: world|experience|opinion|observation"
            )
        body = await self._request_with_path_fallback(
            "POST", f"/banks/{_segment(bank_id)}/remember",
            payload.model_dump(exclude_none=True), self.remember_timeout
        )
        return RememberResponse.model_validate(body)

    async def delete_memory(self, bank_id: str, memory_id: str) -> bool:
        await self._request_with_path_fallback(
            "DELETE", f"/banks/{_segment(bank_id)}/memories/{_segment(memory_id)}",
            None, self.remember_timeout
        )
        return True

    async def close(self) -> None:
        await self.client.aclose()

    async def _request_with_path_fallback(self, method: str, path: str,
                                          payload: Optional[Dict[str, Any]],
                                          timeout: float) -> Any:
        fallback_path = f"/v1{path}"
        try:
            return await self._request(method, path, payload, timeout)
        except HippocampusHttpError as e:
            if e.status != 404:
                raise
            logger.warning(
                f"[HippocampusClient] primary endpoint returned 404 for {method} {path}; "
                f"retrying with {fallback_path}"
            )
        try:
            return await self._request(method, fallback_path, payload, timeout)
        except HippocampusHttpError as e:
            if e.status == 404:
                raise BankNotFoundError(str(e), e.status, e.method, e.path, e.body) from e
            raise

    async def _request(self, method: str, path: str,
                       payload: Optional[Dict[str, Any]], timeout: float) -> Any:
        attempts = self.request_retry_attempts
        for attempt in range(attempts + 1):
            try:
                response = await self.client.request(method, path, json=payload, timeout=timeout)
                body = _parse_body(response.text)
                if not response.is_success:
                    detail = _summarize_error_body(body)
                    suffix = f" ({detail})" if detail else ""
                    raise HippocampusHttpError(
                        f"Hippocampus request failed: {method} {path} -> {response.status_code}{suffix}",
                        status=response.status_code,
                        method=method,
                        path=path,
                        body=body,
                    )
                return body if body is not None else {}
            except (HippocampusHttpError, httpx.TransportError) as e:
                retryable = e.retryable if isinstance(e, HippocampusHttpError) else True
                if not retryable or attempt >= attempts:
                    raise
                logger.warning(
                    f"[HippocampusClient] retrying request {method} {path} "
                    f"attempt={attempt + 1}/{attempts}: {e}"
                )
                await jitter_sleep(RETRY_BASE_MS, attempt)


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"message": text}


def _summarize_error_body(body: Any) -> str:
    if not isinstance(body, dict):
        return ""
    for key in ("message", "error", "details"):
        value = body.get(key)
        if isinstance(value, str):
            return value
    return ""
