"""
Nostr Wallet Connect (NIP-47) client.

A connect URI looks like::

    nostr+walletconnect://<wallet-pubkey>?relay=wss://relay.example&secret=<hex>&lud16=alice@example.com

Each call is an encrypted kind-23194 request signed with the URI secret;
the wallet answers with a kind-23195 event tagged with the request id.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

from coincurve import PrivateKey

from beacon_id.core.exceptions import ProtocolError, ValidationError
from beacon_id.core.logging import get_logger
from beacon_id.wallet.nostr import NostrEvent, nip04_decrypt, nip04_encrypt, public_key_hex
from beacon_id.wallet.relay import RelayTransport, WebsocketRelay

NWC_SCHEME = "nostr+walletconnect"
REQUEST_KIND = 23194
RESPONSE_KIND = 23195

_CONNECT_URI_RE = re.compile(r"^nostr\+walletconnect://", re.IGNORECASE)
_HEX32_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def looks_like_connect_uri(value: str) -> bool:
    """Cheap shape check used to route free-text chat input."""
    return bool(_CONNECT_URI_RE.match(value.strip()))


@dataclass(frozen=True)
class ConnectionParams:
    """Parsed connect URI. ``secret`` is never included in ``repr``."""

    wallet_pubkey: str
    relays: tuple[str, ...]
    secret: str = field(repr=False)
    lud16: str | None = None


def parse_connect_uri(uri: str) -> ConnectionParams:
    """
    Parse a ``nostr+walletconnect://`` URI.

    Raises:
        ValidationError: If the scheme, wallet pubkey, relay or secret is invalid
    """
    parts = urlsplit(uri.strip())
    if parts.scheme.lower() != NWC_SCHEME:
        raise ValidationError("Not a Nostr Wallet Connect URI")

    # Some wallets emit nostr+walletconnect:<pubkey> without the slashes
    wallet_pubkey = (parts.netloc or parts.path).strip("/")
    if not _HEX32_RE.match(wallet_pubkey):
        raise ValidationError("Wallet Connect URI has an invalid wallet pubkey")

    query = parse_qs(parts.query)
    relays = tuple(r for r in query.get("relay", []) if r)
    if not relays:
        raise ValidationError("Wallet Connect URI has no relay")

    secret = (query.get("secret") or [""])[0]
    if not _HEX32_RE.match(secret):
        raise ValidationError("Wallet Connect URI has an invalid secret")

    lud16 = (query.get("lud16") or [""])[0] or None
    return ConnectionParams(
        wallet_pubkey=wallet_pubkey.lower(),
        relays=relays,
        secret=secret.lower(),
        lud16=lud16,
    )


class NwcClient:
    """
    Request/response client for one NWC connection.

    Calls are not retried; transport and wallet errors propagate.
    """

    def __init__(
        self,
        params: ConnectionParams,
        transport_factory: Callable[[str], RelayTransport] = WebsocketRelay,
        timeout: float | None = None,
    ) -> None:
        self._params = params
        self._key = PrivateKey(bytes.fromhex(params.secret))
        self._pubkey = public_key_hex(self._key)
        self._transport = transport_factory(params.relays[0])
        self._timeout = timeout
        self._logger = get_logger("nwc")

    @classmethod
    def from_uri(cls, uri: str, **kwargs: Any) -> NwcClient:
        return cls(parse_connect_uri(uri), **kwargs)

    @property
    def params(self) -> ConnectionParams:
        return self._params

    def _build_request(self, method: str, params: dict[str, Any]) -> NostrEvent:
        content = nip04_encrypt(
            self._key,
            self._params.wallet_pubkey,
            json.dumps({"method": method, "params": params}),
        )
        event = NostrEvent(
            pubkey=self._pubkey,
            kind=REQUEST_KIND,
            content=content,
            tags=[["p", self._params.wallet_pubkey]],
        )
        return event.sign(self._key)

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute one NWC method and return its ``result`` member.

        Raises:
            ProtocolError: If the wallet reply is forged, malformed or carries an error
            NetworkError: If the relay cannot be reached
        """
        request = self._build_request(method, params or {})
        reply_filter = {
            "kinds": [RESPONSE_KIND],
            "authors": [self._params.wallet_pubkey],
            "#e": [request.id],
        }
        self._logger.info(f"NWC {method} request {request.id[:8]}")
        reply = await self._transport.request(request, reply_filter, timeout=self._timeout)

        if reply.pubkey != self._params.wallet_pubkey or not reply.verify():
            raise ProtocolError("Wallet reply failed signature check", protocol="nwc")
        if request.id not in reply.tag_values("e"):
            raise ProtocolError("Wallet reply does not reference the request", protocol="nwc")

        try:
            body = json.loads(nip04_decrypt(self._key, self._params.wallet_pubkey, reply.content))
        except ValueError as e:
            raise ProtocolError(f"Wallet reply is not valid JSON: {e}", protocol="nwc") from e
        if not isinstance(body, dict):
            raise ProtocolError("Wallet reply is not an object", protocol="nwc")

        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            self._logger.warning(f"NWC {method} failed: {code} {message}")
            raise ProtocolError(message or "Wallet returned an error", protocol="nwc", code=code)

        result = body.get("result")
        return result if isinstance(result, dict) else {}

    async def pay_invoice(self, invoice: str) -> dict[str, Any]:
        return await self.call("pay_invoice", {"invoice": invoice})

    async def get_balance(self) -> dict[str, Any]:
        return await self.call("get_balance")

    async def make_invoice(self, amount_msats: int, description: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"amount": amount_msats}
        if description:
            params["description"] = description
        return await self.call("make_invoice", params)
