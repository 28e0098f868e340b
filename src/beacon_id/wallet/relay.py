"""
Relay transport for Nostr Wallet Connect.

A request event is published to the relay after subscribing to the wallet's
reply, then the first matching reply event is returned.
"""

from __future__ import annotations

import asyncio
import json
import secrets
from abc import ABC, abstractmethod
from typing import Any

import websockets

from beacon_id.core.exceptions import NetworkError, ProtocolError
from beacon_id.core.logging import get_logger
from beacon_id.wallet.nostr import NostrEvent


class RelayTransport(ABC):
    """Publishes one request event and waits for the matching reply."""

    @abstractmethod
    async def request(
        self,
        event: NostrEvent,
        reply_filter: dict[str, Any],
        timeout: float | None = None,
    ) -> NostrEvent:
        """
        Publish ``event`` and return the first event matching ``reply_filter``.

        Args:
            event: Signed request event
            reply_filter: NIP-01 subscription filter for the reply
            timeout: Seconds to wait for the reply, None to wait indefinitely
        """
        ...


class WebsocketRelay(RelayTransport):
    """Relay transport over a websocket connection opened per request."""

    def __init__(self, relay_url: str) -> None:
        self._relay_url = relay_url
        self._logger = get_logger("relay")

    @property
    def relay_url(self) -> str:
        return self._relay_url

    async def request(
        self,
        event: NostrEvent,
        reply_filter: dict[str, Any],
        timeout: float | None = None,
    ) -> NostrEvent:
        sub_id = secrets.token_hex(8)
        try:
            async with websockets.connect(self._relay_url) as ws:
                await ws.send(json.dumps(["REQ", sub_id, reply_filter]))
                await ws.send(json.dumps(["EVENT", event.to_dict()]))
                self._logger.debug(f"Published event {event.id[:8]} to {self._relay_url}")
                reply = await asyncio.wait_for(self._await_reply(ws, sub_id, event.id), timeout)
                await ws.send(json.dumps(["CLOSE", sub_id]))
                return reply
        except asyncio.TimeoutError:
            raise NetworkError(
                f"Timed out waiting for wallet reply on {self._relay_url}", url=self._relay_url
            ) from None
        except (OSError, websockets.WebSocketException) as e:
            raise NetworkError(f"Relay connection failed: {e}", url=self._relay_url) from e

    async def _await_reply(self, ws: Any, sub_id: str, request_id: str) -> NostrEvent:
        async for raw in ws:
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(message, list) or not message:
                continue

            kind = message[0]
            if kind == "EVENT" and len(message) >= 3 and message[1] == sub_id:
                return NostrEvent.from_dict(message[2])
            if kind == "OK" and len(message) >= 3 and message[1] == request_id and not message[2]:
                reason = message[3] if len(message) > 3 else "rejected"
                raise ProtocolError(f"Relay rejected request: {reason}", protocol="nostr")
            if kind == "NOTICE" and len(message) >= 2:
                self._logger.info(f"Relay notice from {self._relay_url}: {message[1]}")
        raise NetworkError("Relay closed connection before replying", url=self._relay_url)
