"""
PendingPaymentStore - payments waiting for the user's approval.

At most one pending payment exists per gateway user: ``put`` replaces the
previous one. ``retrieve_and_clear`` is read-once and atomic, so duplicate
"yes" replies can never both obtain the same payment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from beacon_id.core.exceptions import ValidationError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import PendingPayment

if TYPE_CHECKING:
    from beacon_id.storage.base import StorageBackend


class PendingPaymentStore:
    """Keyed store of pending payments on the StorageBackend."""

    COLLECTION = "pending_payments"

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage
        self._logger = get_logger("pending")

    async def put(self, gateway_user: str, payment: PendingPayment) -> None:
        """Register a payment awaiting approval, replacing any earlier one."""
        payment.gateway_user = gateway_user
        await self._storage.save(self.COLLECTION, gateway_user, payment.to_dict())
        self._logger.info(
            f"Pending {payment.kind.value} payment stored for {gateway_user} "
            f"(request {payment.request_id})"
        )

    async def peek(self, gateway_user: str) -> PendingPayment | None:
        data = await self._storage.get(self.COLLECTION, gateway_user)
        return PendingPayment.from_dict(data) if data else None

    async def retrieve_and_clear(self, gateway_user: str) -> PendingPayment | None:
        """
        Take the pending payment, leaving nothing behind.

        Raises:
            ValidationError: If the stored record cannot be read. The record is
                already removed and travels in ``details["record"]``.
        """
        data = await self._storage.pop(self.COLLECTION, gateway_user)
        if not data:
            return None
        try:
            return PendingPayment.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(
                f"Unreadable pending payment for {gateway_user}: {e}",
                details={"record": data},
            ) from e

    async def clear(self, gateway_user: str) -> bool:
        """Drop a pending payment (expiry or cancellation)."""
        return await self._storage.delete(self.COLLECTION, gateway_user)
