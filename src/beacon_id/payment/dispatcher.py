"""PaymentDispatcher - executes an approved payment on the user's wallet."""

from __future__ import annotations

from typing import TYPE_CHECKING

from beacon_id.core.logging import get_logger
from beacon_id.core.types import (
    BalanceSnapshot,
    PaymentOutcome,
    PendingPayment,
    PendingPaymentKind,
)
from beacon_id.wallet.backends import ApiWalletBackend
from beacon_id.wallet.lightning import decode_invoice_msats
from beacon_id.wallet.normalizer import build_balance_insight, extract_message_from_error

if TYPE_CHECKING:
    from beacon_id.wallet.backends import WalletBackend, WalletBackendFactory
    from beacon_id.wallet.resolver import WalletResolver

UNKNOWN_ERROR = "An unknown error occurred."


class PaymentDispatcher:
    """
    Resolves the user's wallet, pays through its backend and normalizes the result.

    Never raises: every failure becomes a failed PaymentOutcome with a
    human-readable error. No retries.
    """

    def __init__(self, resolver: WalletResolver, backends: WalletBackendFactory) -> None:
        self._resolver = resolver
        self._backends = backends
        self._logger = get_logger("dispatcher")

    async def dispatch(self, payment: PendingPayment) -> PaymentOutcome:
        """Execute a pending payment."""
        self._logger.info(
            f"Processing {payment.kind.value} payment for {payment.npub} (request {payment.request_id})"
        )

        missing = self._missing_fields(payment)
        if missing:
            return PaymentOutcome.failed(missing)

        try:
            wallet = await self._resolver.resolve(payment.npub)
        except Exception as e:
            self._logger.error(f"Wallet resolution failed for {payment.npub}: {e}", exc_info=True)
            return PaymentOutcome.failed(extract_message_from_error(e) or UNKNOWN_ERROR)
        if wallet is None:
            return PaymentOutcome.failed(f"No wallet found for user {payment.npub}.")

        try:
            backend = self._backends.build(wallet)
        except Exception as e:
            self._logger.error(f"Wallet for {payment.npub} is unusable: {e}")
            return PaymentOutcome.failed(extract_message_from_error(e) or UNKNOWN_ERROR)

        snapshot: BalanceSnapshot | None = None
        if isinstance(backend, ApiWalletBackend):
            await backend.refresh_ledger()
            snapshot = (await backend.snapshot()).value

        request_msats = self.request_msats(payment)
        try:
            outcome = await self._pay(backend, payment)
        except Exception as e:
            self._logger.error(
                f"makePayment failed for {payment.npub} "
                f"(type={payment.kind.value}, wallet={wallet.kind.value}): {e}",
                exc_info=True,
            )
            reason = extract_message_from_error(e) or UNKNOWN_ERROR
            return PaymentOutcome.failed(
                self._with_balance_context(reason, snapshot, request_msats), request_msats
            )

        outcome.request_msats = outcome.request_msats or request_msats
        if not outcome.success and snapshot is not None:
            outcome.error = self._with_balance_context(outcome.error or "", snapshot, request_msats)
        return outcome

    @staticmethod
    def _missing_fields(payment: PendingPayment) -> str | None:
        if payment.kind == PendingPaymentKind.LN_ADDRESS:
            if not payment.ln_address or not payment.amount:
                return "Missing lnAddress or amount"
        elif not payment.ln_invoice:
            return "Missing invoice for payment."
        return None

    @staticmethod
    def request_msats(payment: PendingPayment) -> int | None:
        """
        Requested amount in msats.

        For invoices this is the amount decoded from the invoice itself and
        only informs the failure message.
        """
        if payment.kind == PendingPaymentKind.LN_ADDRESS:
            return payment.request_msats
        if payment.ln_invoice:
            return decode_invoice_msats(payment.ln_invoice)
        return None

    async def _pay(self, backend: WalletBackend, payment: PendingPayment) -> PaymentOutcome:
        if payment.kind == PendingPaymentKind.LN_ADDRESS:
            return await backend.pay_address(payment.ln_address, payment.amount)  # type: ignore[arg-type]
        return await backend.pay_invoice(payment.ln_invoice)  # type: ignore[arg-type]

    @staticmethod
    def _with_balance_context(
        message: str,
        snapshot: BalanceSnapshot | None,
        request_msats: int | None,
    ) -> str:
        if snapshot is None:
            return message
        insight = build_balance_insight(snapshot.balance_msats, snapshot.pending_msats, request_msats)
        return f"{message} {insight}" if insight else message
