"""Pending payments and payment dispatch."""

from beacon_id.payment.dispatcher import PaymentDispatcher
from beacon_id.payment.pending import PendingPaymentStore

__all__ = ["PaymentDispatcher", "PendingPaymentStore"]
