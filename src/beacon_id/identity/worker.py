"""
IdentityWorker - the message pump.

Consumes inbound chat messages and routes each one:

- unknown or mid-onboarding user -> OnboardingFlow
- "yes" from a known user         -> ApprovalGate
- anything else                   -> logged, ignored

Every message runs in its own task and is individually guarded, so one
failing or hung message never stops the loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from beacon_id.core.logging import get_logger
from beacon_id.core.types import InboundMessage
from beacon_id.identity.approval import is_affirmative

if TYPE_CHECKING:
    from beacon_id.identity.approval import ApprovalGate
    from beacon_id.identity.onboarding import OnboardingFlow
    from beacon_id.identity.store import GatewayMap
    from beacon_id.messaging.queue import MessageQueue


class IdentityWorker:
    """Routes inbound messages to onboarding or approval."""

    def __init__(
        self,
        inbound: MessageQueue,
        gateway_map: GatewayMap,
        onboarding: OnboardingFlow,
        approval: ApprovalGate,
        gateway_npub: str = "",
        poll_interval: float = 1.0,
    ) -> None:
        self._inbound = inbound
        self._gateway_map = gateway_map
        self._onboarding = onboarding
        self._approval = approval
        self._gateway_npub = gateway_npub
        self._poll_interval = poll_interval
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._logger = get_logger("worker")

    @property
    def running(self) -> bool:
        return self._running

    async def handle(self, msg: InboundMessage) -> None:
        gateway_user = msg.sender
        self._logger.info(f"Worker received message from {gateway_user}, beaconID: {msg.message_id}")

        text = msg.text.strip()
        if not text:
            return

        await self._remember_bot_id(msg)

        known = await self._gateway_map.is_known(msg.gateway.type, self._gateway_npub, gateway_user)
        if not known or self._onboarding.has_state(gateway_user):
            await self._onboarding.handle(msg)
            return

        if is_affirmative(text):
            await self._approval.handle(msg)
            return

        self._logger.info(f"No handler for known user message: {text!r}")

    async def _remember_bot_id(self, msg: InboundMessage) -> None:
        if not msg.bot_id:
            return
        gateway_npub = msg.gateway.npub or self._gateway_npub
        if msg.gateway.type and gateway_npub:
            await self._gateway_map.remember_bot_id(
                msg.gateway.type, gateway_npub, msg.sender, msg.bot_id
            )

    async def _handle_guarded(self, raw: dict[str, Any]) -> None:
        try:
            await self.handle(InboundMessage.from_dict(raw))
        except Exception as e:
            self._logger.error(f"Critical error handling inbound message: {e}", exc_info=True)

    def submit(self, raw: dict[str, Any]) -> asyncio.Task[None]:
        """Handle one raw queue message in its own task."""
        task = asyncio.create_task(self._handle_guarded(raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self) -> None:
        """Consume the inbound queue until ``stop`` is called."""
        self._running = True
        self._logger.info("Identity worker started")
        while self._running:
            try:
                raw = await self._inbound.get(timeout=self._poll_interval)
            except Exception as e:
                self._logger.error(f"Inbound queue read failed: {e}", exc_info=True)
                await asyncio.sleep(self._poll_interval)
                continue
            if raw is None:
                continue
            self.submit(raw)
        self._logger.info("Identity worker stopped")

    def stop(self) -> None:
        self._running = False

    async def drain(self) -> None:
        """Wait for in-flight message tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
