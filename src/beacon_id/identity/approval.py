"""
ApprovalGate - spends only after the user replies "yes".

The pending payment is retrieved and cleared before dispatch. A duplicate
"yes" therefore finds nothing and is ignored, but a crash mid-dispatch loses
the request; the dispatch log line carries the request id for reconciliation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from beacon_id.core.exceptions import ValidationError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import InboundMessage, PaymentOutcome, PendingPayment
from beacon_id.identity import messages
from beacon_id.notify.notifier import PaymentStatus

if TYPE_CHECKING:
    from beacon_id.identity.replies import ReplySender
    from beacon_id.notify.notifier import Notifier
    from beacon_id.payment.dispatcher import PaymentDispatcher
    from beacon_id.payment.pending import PendingPaymentStore
    from beacon_id.wallet.service import WalletService

AFFIRMATIVE_REPLY = "yes"


def is_affirmative(text: str) -> bool:
    return text.strip().lower() == AFFIRMATIVE_REPLY


class ApprovalGate:
    """Consumes a user's pending payment on "yes" and reports the outcome."""

    def __init__(
        self,
        pending: PendingPaymentStore,
        dispatcher: PaymentDispatcher,
        wallets: WalletService,
        notifier: Notifier,
        replies: ReplySender,
    ) -> None:
        self._pending = pending
        self._dispatcher = dispatcher
        self._wallets = wallets
        self._notifier = notifier
        self._replies = replies
        self._logger = get_logger("approval")

    async def handle(self, msg: InboundMessage) -> PaymentOutcome | None:
        """
        Process an affirmative reply.

        Returns:
            The dispatch outcome, or None when nothing was pending
        """
        gateway_user = msg.sender
        self._logger.info(f"Received 'YES' confirmation from {gateway_user}")

        try:
            payment = await self._pending.retrieve_and_clear(gateway_user)
        except ValidationError as e:
            await self._reject_unreadable(msg, e)
            return PaymentOutcome.failed(messages.PENDING_UNREADABLE)
        if payment is None:
            self._logger.info(f"No pending payment found for {gateway_user}. Ignoring 'YES'.")
            return None

        self._logger.info(
            f"Dispatching request {payment.request_id} for {gateway_user}; "
            f"pending record already cleared"
        )
        outcome = await self._dispatcher.dispatch(payment)
        context = await self._replies.context_for(msg)

        if outcome.success:
            await self._replies.send(msg, await self._confirmation_text(payment, outcome), context)
            summary = (
                messages.SUMMARY_PAID_WITH_RECEIPT.format(receipt=outcome.receipt)
                if outcome.receipt
                else messages.SUMMARY_PAID
            )
            await self._report(PaymentStatus.PAID, summary, payment)
        else:
            await self._replies.send(msg, messages.PAYMENT_FAILED.format(error=outcome.error), context)
            await self._report(
                PaymentStatus.REJECTED,
                outcome.error or messages.SUMMARY_REJECTED_DEFAULT,
                payment,
            )
        return outcome

    async def _reject_unreadable(self, msg: InboundMessage, error: ValidationError) -> None:
        record = error.details.get("record", {})
        self._logger.error(f"Dropped unreadable pending payment for {msg.sender}: {record!r} ({error.message})")
        context = await self._replies.context_for(msg)
        await self._replies.send(msg, messages.PAYMENT_FAILED.format(error=messages.PENDING_UNREADABLE), context)
        await self._report(PaymentStatus.REJECTED, messages.PENDING_UNREADABLE, record)

    async def _confirmation_text(self, payment: PendingPayment, outcome: PaymentOutcome) -> str:
        text = messages.PAYMENT_CONFIRMED
        if outcome.receipt:
            text += messages.PAYMENT_RECEIPT.format(receipt=outcome.receipt)
        try:
            balance = await self._wallets.get_balance(payment.npub)
        except Exception as e:
            self._logger.error(f"Failed to fetch balance after payment: {e}")
            return text
        if balance.success and balance.balance is not None:
            text += messages.PAYMENT_NEW_BALANCE.format(balance=balance.balance)
        return text

    async def _report(
        self, status: PaymentStatus, summary: str, payment: PendingPayment | dict[str, Any]
    ) -> None:
        request_id = payment.get("request_id") if isinstance(payment, dict) else payment.request_id
        try:
            await self._notifier.send_payment_confirmation(status, summary, payment)
        except Exception as e:
            self._logger.warning(
                f"Payment confirmation for request {request_id} not delivered (non-fatal): {e}"
            )
