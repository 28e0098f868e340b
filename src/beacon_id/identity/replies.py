"""
ReplySender - builds routing context and enqueues outbound chat messages.

Outbound messages carry a ``meta.ctx`` so the gateway can route them back:
``networkID`` (gateway type), ``userId``, optional ``returnGatewayID`` and
optional ``botid``. A missing bot id is filled from the gateway map.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from beacon_id.core.logging import get_logger
from beacon_id.core.types import InboundMessage, OutboundMessage

if TYPE_CHECKING:
    from beacon_id.identity.store import GatewayMap
    from beacon_id.messaging.queue import MessageQueue


class ReplySender:
    """Sends replies to the user an inbound message came from."""

    def __init__(self, outbound: MessageQueue, gateway_map: GatewayMap, gateway_npub: str = "") -> None:
        self._outbound = outbound
        self._gateway_map = gateway_map
        self._gateway_npub = gateway_npub.strip()
        self._logger = get_logger("replies")

    async def ensure_bot_id(self, context: dict[str, Any], gateway_type: str, gateway_user: str) -> str | None:
        """Return the context's bot id, filling it from the gateway map when absent."""
        existing = str(context.get("botid") or "").strip()
        if existing:
            return existing
        if not self._gateway_npub:
            return None
        try:
            links = await self._gateway_map.resolve_user_links(
                gateway_type, self._gateway_npub, gateway_user
            )
        except Exception as e:
            self._logger.error(f"ensure_bot_id lookup failed for {gateway_user}: {e}")
            return None
        stored = (links.gateway_bot_id or "").strip() if links else ""
        if stored:
            context["botid"] = stored
            return stored
        return None

    async def context_for(self, msg: InboundMessage) -> dict[str, Any]:
        context: dict[str, Any] = {"networkID": msg.gateway.type, "userId": msg.sender}
        if msg.return_gateway_id:
            context["returnGatewayID"] = msg.return_gateway_id
        if msg.bot_id:
            context["botid"] = msg.bot_id
        await self.ensure_bot_id(context, msg.gateway.type, msg.sender)
        return context

    async def send(self, msg: InboundMessage, body: str, context: dict[str, Any] | None = None) -> None:
        """Reply to the sender of ``msg`` through the gateway it used."""
        if context is None:
            context = await self.context_for(msg)
        reply = OutboundMessage(
            recipient=msg.sender,
            body=body,
            gateway=msg.gateway,
            context=context,
        )
        await self._outbound.put(reply.to_dict())
