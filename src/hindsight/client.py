"""Async HTTP client for the Hindsight memory backend."""

from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx
import structlog

from shared_types import RecallBudget

from .errors import BackendError, error_from_network_failure, error_from_response
from .models import HealthStatus, Memory, SignalAck

logger = structlog.get_logger().bind(source="hindsight")


class HindsightClient:
    """Thin wrapper over the Hindsight REST API.

    Every failure surfaces as ``BackendError`` so callers can decide on retry from
    ``is_retryable`` alone. The client applies its own per-call timeout.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8888,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        recall_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"http://{host}:{port}/api/v1"
        self.timeout = timeout
        self.recall_timeout = recall_timeout
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout, transport=transport
        )

    @classmethod
    def from_config(cls, backend_config, transport=None) -> "HindsightClient":
        return cls(
            host=backend_config.host,
            port=backend_config.port,
            api_key=backend_config.api_key,
            timeout=backend_config.timeout,
            recall_timeout=backend_config.recall_timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    async def recall(
        self,
        bank_id: str,
        query: str,
        budget: RecallBudget | str = RecallBudget.MID,
        fact_type: str = "all",
        max_tokens: Optional[int] = None,
        boost_by_usefulness: bool = False,
        usefulness_weight: Optional[float] = None,
    ) -> list[Memory]:
        """Ranked facts matching ``query``."""
        body: dict[str, Any] = {
            "query": query,
            "budget": str(budget),
            "fact_type": fact_type,
            "include_entities": False,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if boost_by_usefulness:
            body["boost_by_usefulness"] = True
            if usefulness_weight is not None:
                body["usefulness_weight"] = usefulness_weight

        data = await self._request(
            "POST", f"/banks/{quote(bank_id, safe='')}/recall", json=body, timeout=self.recall_timeout
        )
        return [Memory.from_api(m) for m in (data or {}).get("memories", [])]

    async def signal(self, bank_id: str, items: Iterable) -> SignalAck:
        """Submit usage signals for recalled facts.

        ``items`` are ``SignalItem`` models or dicts already in wire format.
        """
        signals = [i.to_wire() if hasattr(i, "to_wire") else dict(i) for i in items]
        data = await self._request(
            "POST", f"/banks/{quote(bank_id, safe='')}/signal", json={"signals": signals}
        )
        data = data or {}
        return SignalAck(
            accepted=int(data.get("signals_processed", data.get("accepted", len(signals)))),
            updated_facts=list(data.get("updated_facts", [])),
        )

    async def health(self) -> HealthStatus:
        """Probe the backend. Never raises."""
        try:
            data = await self._request("GET", "/health") or {}
        except BackendError as e:
            return HealthStatus(healthy=False, error=str(e))
        return HealthStatus(
            healthy=bool(data.get("healthy", data.get("status") == "healthy")),
            version=data.get("version"),
            banks=int(data.get("bank_count", 0)),
        )

    async def _request(
        self, method: str, path: str, json: Optional[dict] = None, timeout: Optional[float] = None
    ) -> Any:
        try:
            response = await self.client.request(
                method, path, json=json, timeout=timeout or self.timeout
            )
        except httpx.HTTPError as e:
            logger.debug("hindsight.request_failed", method=method, path=path, error=str(e))
            raise error_from_network_failure(e) from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            raise error_from_response(response.status_code, body, path, response.reason_phrase)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()
