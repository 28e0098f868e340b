"""
Upstream notifications.

Two fire-and-forget events leave the identity service: a new user finished
onboarding, and a pending payment was paid or rejected. Callers treat both
as best-effort.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from beacon_id.core.exceptions import NetworkError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import PendingPayment


class PaymentStatus(str, Enum):
    """Outcome tag forwarded upstream."""

    PAID = "paid"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    NEW_USER = "user.onboarded"
    PAYMENT_CONFIRMATION = "payment.confirmation"


def pending_record(pending: PendingPayment | dict[str, Any]) -> dict[str, Any]:
    """Wire form of a pending payment; unreadable records are forwarded raw."""
    if isinstance(pending, PendingPayment):
        return pending.to_dict()
    return dict(pending)


class Notifier(ABC):
    """Abstract base class for upstream notifiers."""

    @abstractmethod
    async def notify_new_user(self, gateway_type: str, gateway_id: str, npub: str) -> None:
        """Announce a user who completed onboarding."""
        ...

    @abstractmethod
    async def send_payment_confirmation(
        self,
        status: PaymentStatus | str,
        summary: str,
        pending: PendingPayment | dict[str, Any],
    ) -> None:
        """Report the outcome of an approved payment."""
        ...

    async def close(self) -> None:
        return None


class LoggingNotifier(Notifier):
    """Default notifier: records events in the log only."""

    def __init__(self) -> None:
        self._logger = get_logger("notify")

    async def notify_new_user(self, gateway_type: str, gateway_id: str, npub: str) -> None:
        self._logger.info(f"New user onboarded: {gateway_type}:{gateway_id} -> {npub}")

    async def send_payment_confirmation(
        self,
        status: PaymentStatus | str,
        summary: str,
        pending: PendingPayment | dict[str, Any],
    ) -> None:
        record = pending_record(pending)
        self._logger.info(
            f"Payment {PaymentStatus(status).value} for {record.get('npub')} "
            f"(request {record.get('request_id')}): {summary}"
        )


class HttpNotifier(Notifier):
    """
    POSTs JSON notifications to an upstream URL.

    Payload:
        {"type": "user.onboarded" | "payment.confirmation",
         "timestamp": ISO-8601, "data": {...}}
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._http_client = http_client
        self._logger = get_logger("notify.http")

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

    async def _post(self, event_type: NotificationType, data: dict[str, Any]) -> None:
        payload = {
            "type": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
        client = await self._get_client()
        try:
            response = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            raise NetworkError(f"Notification {event_type.value} failed: {e}", url=self._url) from e
        if response.status_code >= 400:
            raise NetworkError(
                f"Notification {event_type.value} rejected",
                status_code=response.status_code,
                url=self._url,
            )
        self._logger.debug(f"Notification {event_type.value} delivered ({response.status_code})")

    async def notify_new_user(self, gateway_type: str, gateway_id: str, npub: str) -> None:
        await self._post(
            NotificationType.NEW_USER,
            {"gatewayType": gateway_type, "gatewayId": gateway_id, "npub": npub},
        )

    async def send_payment_confirmation(
        self,
        status: PaymentStatus | str,
        summary: str,
        pending: PendingPayment | dict[str, Any],
    ) -> None:
        await self._post(
            NotificationType.PAYMENT_CONFIRMATION,
            {
                "status": PaymentStatus(status).value,
                "summary": summary,
                "pending": pending_record(pending),
            },
        )
