"""Remote coordination service client."""

import os
import logging
import secrets
from dataclasses import dataclass, replace
from typing import Any, Protocol

import httpx
from dotenv import dotenv_values, find_dotenv

from .types import (
    ConfigError,
    Keychain,
    SignatureShareRecord,
    TransportError,
    TxRequest,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiConfig:
    """Coordination service connection settings."""

    base_url: str
    access_token: str | None = None
    timeout_secs: float = 30.0
    user_agent: str = "tss-wallet-python/0.1.0"

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "ApiConfig":
        """
        Build a config from the environment.

        Values from a ``.env`` file are used as defaults; real environment
        variables win. Recognised keys: ``TSS_WALLET_ENV``,
        ``TSS_WALLET_BASE_URL``, ``TSS_WALLET_ACCESS_TOKEN``.
        """
        values = {**dotenv_values(dotenv_path or find_dotenv(usecwd=True)), **os.environ}

        env = values.get("TSS_WALLET_ENV") or "test"
        if env not in Environments:
            raise ConfigError(f"Unknown environment: {env}")
        base = Environments[env]

        return replace(
            base,
            base_url=values.get("TSS_WALLET_BASE_URL") or base.base_url,
            access_token=values.get("TSS_WALLET_ACCESS_TOKEN") or base.access_token,
        )


# Pre-configured environments
Environments = {
    "prod": ApiConfig(base_url="https://app.bitgo.com"),
    "test": ApiConfig(base_url="https://app.bitgo-test.com"),
    "dev": ApiConfig(base_url="https://app.bitgo-dev.com"),
    "mock": ApiConfig(base_url="https://bitgo.fakeurl"),
}


class RequestTracer:
    """Request id generator shared by the calls of one logical operation."""

    def __init__(self) -> None:
        self._seed = secrets.token_hex(10)
        self._seq = 0

    def inc(self) -> None:
        self._seq += 1

    def __str__(self) -> str:
        return f"{self._seed}-{self._seq:04x}"


class CoordinationClient(Protocol):
    """Network boundary used by the keychain and signing coordinators."""

    async def get_constants(self) -> dict[str, Any]:
        ...

    async def create_key(
        self, coin: str, params: dict[str, Any], req_id: RequestTracer | None = None
    ) -> Keychain:
        ...

    async def get_tx_requests(
        self,
        wallet_id: str,
        tx_request_id: str,
        latest: bool = True,
        req_id: RequestTracer | None = None,
    ) -> list[TxRequest]:
        ...

    async def post_signature_share(
        self,
        wallet_id: str,
        tx_request_id: str,
        record: SignatureShareRecord,
        req_id: RequestTracer | None = None,
    ) -> SignatureShareRecord:
        ...

    async def post_tx_request_create(
        self, wallet_id: str, body: dict[str, Any], req_id: RequestTracer | None = None
    ) -> TxRequest:
        ...

    async def post_tx_send(
        self,
        coin: str,
        wallet_id: str,
        tx_request_id: str,
        req_id: RequestTracer | None = None,
    ) -> None:
        ...


class BitGoClient:
    """
    HTTP implementation of :class:`CoordinationClient`.

    Example:
        >>> async with BitGoClient(Environments["test"]) as client:
        ...     requests = await client.get_tx_requests(wallet_id, tx_request_id)
    """

    def __init__(self, config: ApiConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_secs,
        )

    @property
    def config(self) -> ApiConfig:
        return self._config

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "BitGoClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def get_constants(self) -> dict[str, Any]:
        """Fetch service constants (includes the service's transport key)."""
        data = await self._request("GET", "/api/v1/client/constants")
        return data.get("constants", {})

    async def create_key(
        self, coin: str, params: dict[str, Any], req_id: RequestTracer | None = None
    ) -> Keychain:
        data = await self._request("POST", f"/api/v2/{coin}/key", json=params, req_id=req_id)
        return Keychain.from_dict(data)

    async def get_tx_requests(
        self,
        wallet_id: str,
        tx_request_id: str,
        latest: bool = True,
        req_id: RequestTracer | None = None,
    ) -> list[TxRequest]:
        data = await self._request(
            "GET",
            f"/api/v2/wallet/{wallet_id}/txrequests",
            params={"txRequestIds": tx_request_id, "latest": str(latest).lower()},
            req_id=req_id,
        )
        return [TxRequest.from_dict(tx) for tx in data.get("txRequests", [])]

    async def post_signature_share(
        self,
        wallet_id: str,
        tx_request_id: str,
        record: SignatureShareRecord,
        req_id: RequestTracer | None = None,
    ) -> SignatureShareRecord:
        data = await self._request(
            "POST",
            f"/api/v2/wallet/{wallet_id}/txrequests/{tx_request_id}/signatureshares",
            json=record.to_dict(),
            req_id=req_id,
        )
        return SignatureShareRecord.from_dict(data)

    async def post_tx_request_create(
        self, wallet_id: str, body: dict[str, Any], req_id: RequestTracer | None = None
    ) -> TxRequest:
        data = await self._request(
            "POST", f"/api/v2/wallet/{wallet_id}/txrequests", json=body, req_id=req_id
        )
        return TxRequest.from_dict(data)

    async def post_tx_send(
        self,
        coin: str,
        wallet_id: str,
        tx_request_id: str,
        req_id: RequestTracer | None = None,
    ) -> None:
        await self._request(
            "POST",
            f"/api/v2/{coin}/wallet/{wallet_id}/tx/send",
            json={"txRequestId": tx_request_id},
            req_id=req_id,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        req_id: RequestTracer | None = None,
    ) -> Any:
        """Send a request and decode the JSON body."""
        headers = {"User-Agent": self._config.user_agent}
        if self._config.access_token:
            headers["Authorization"] = f"Bearer {self._config.access_token}"
        if req_id is not None:
            req_id.inc()
            headers["Request-ID"] = str(req_id)

        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {path} failed: {e}", cause=e) from e

        if response.is_error:
            message = _error_message(response)
            logger.warning("%s %s returned %d: %s", method, path, response.status_code, message)
            raise TransportError(message, status_code=response.status_code)

        if not response.content:
            return {}
        return response.json()


def _error_message(response: httpx.Response) -> str:
    """Extract the service's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}: {response.reason_phrase}"
