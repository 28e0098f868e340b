"""
nwcli REST wallet client.

Thin async client over the nwcli wallet service. Every request is logged
with a correlation id before it is sent and after the response arrives,
so a payment can be traced end to end from the logs.
"""

from __future__ import annotations

import itertools
import json
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from beacon_id.core.exceptions import ConfigurationError, NetworkError
from beacon_id.core.logging import get_logger

if TYPE_CHECKING:
    from beacon_id.core.config import Config

DEFAULT_INVOICE_DESCRIPTION = "Beacon Invoice"


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class NwcliClient:
    """
    Client for the nwcli wallet service.

    Example:
        >>> client = NwcliClient.from_config(config)
        >>> balance = await client.fetch_balance("beacon-whatsapp-123456")
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        master_wallet: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize nwcli client.

        Args:
            base_url: Service base URL, port included
            auth_token: Bearer token sent on every request
            master_wallet: Parent wallet new sub-accounts are created under
            timeout: Request timeout in seconds
            http_client: Pre-configured httpx client (tests, connection sharing)
        """
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._master_wallet = master_wallet
        self._timeout = timeout
        self._http_client = http_client
        self._seq = itertools.count(1)
        self._logger = get_logger("nwcli")

    @classmethod
    def from_config(cls, config: Config, http_client: httpx.AsyncClient | None = None) -> NwcliClient:
        return cls(
            base_url=config.nwcli_url(),
            auth_token=config.nwcli_auth,
            master_wallet=config.nwcli_master_wallet,
            timeout=config.http_timeout,
            http_client=http_client,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _next_request_id(self) -> str:
        return f"req-{int(time.time() * 1000)}-{next(self._seq)}"

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """
        Send one request and return the parsed JSON body.

        Raises:
            NetworkError: On connection failure or a non-2xx status; ``data``
                carries the parsed response body
        """
        client = await self._get_client()
        url = f"{self._base_url}{path if path.startswith('/') else '/' + path}"
        request_id = self._next_request_id()
        method = method.upper()

        self._logger.info(
            f"[{request_id}] request {method} {url} params={params or {}} body={json.dumps(body) if body else None}"
        )
        try:
            response = await client.request(
                method,
                url,
                params=params,
                content=json.dumps(body) if body is not None else None,
                headers=self._headers(body is not None),
            )
        except httpx.HTTPError as e:
            self._logger.error(f"[{request_id}] error {method} {url}: {e}")
            raise NetworkError(f"[nwcli] request failed: {e}", url=url) from e

        data = _parse_body(response.text)
        self._logger.info(
            f"[{request_id}] response {response.status_code} {response.reason_phrase} data={data!r}"
        )

        if not response.is_success:
            self._logger.error(f"[{request_id}] error {response.status_code} from {url}")
            raise NetworkError(
                f"[nwcli] {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                url=url,
                data=data,
            )
        return data

    def _require_master_wallet(self) -> str:
        if not self._master_wallet:
            raise ConfigurationError("[nwcli] NWCLI_MASTER_WALLET is not configured.")
        return self._master_wallet

    # ==================== Endpoints ====================

    async def create_sub_account(
        self,
        label: str,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        connect_uri: str | None = None,
    ) -> dict[str, Any]:
        """Create a sub-account under the master wallet."""
        parent = self._require_master_wallet()
        body = {
            "label": label,
            "description": description,
            "metadata": metadata,
            "connectUri": connect_uri,
        }
        return await self.request(
            "POST",
            f"/api/wallets/{quote(parent, safe='')}/subaccounts",
            body={k: v for k, v in body.items() if v is not None},
        )

    async def fetch_balance(self, identifier: str) -> Any:
        return await self.request("GET", "/api/balance", params={"nickname": identifier})

    async def create_invoice(
        self,
        identifier: str,
        amount_sats: int,
        description: str | None = None,
    ) -> Any:
        return await self.request(
            "POST",
            "/api/getInvoice",
            body={
                "nickname": identifier,
                "amount": amount_sats,
                "description": description or DEFAULT_INVOICE_DESCRIPTION,
            },
        )

    async def pay_invoice(self, identifier: str, invoice: str) -> Any:
        return await self.request(
            "POST", "/api/payInvoice", body={"nickname": identifier, "invoice": invoice}
        )

    async def pay_ln_address(
        self,
        identifier: str,
        ln_address: str,
        amount_sats: int,
        comment: str | None = None,
    ) -> Any:
        body: dict[str, Any] = {
            "nickname": identifier,
            "lnAddress": ln_address,
            "amountSats": amount_sats,
        }
        if comment:
            body["comment"] = comment
        return await self.request("POST", "/api/payLnAddress", body=body)

    async def refresh_ledger(self, identifier: str) -> Any:
        return await self.request("POST", "/api/refreshLedger", body={"nickname": identifier})
