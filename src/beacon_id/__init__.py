"""
Beacon Identity - wallet onboarding and payment approval over chat.

Usage:
    >>> from beacon_id import Config, IdentityService, PendingPayment, PendingPaymentKind
    >>>
    >>> async with IdentityService(Config.from_env()) as service:
    ...     await service.request_approval(
    ...         "15551234567",
    ...         PendingPayment(npub="npub1...", kind=PendingPaymentKind.LN_INVOICE, ln_invoice="lnbc..."),
    ...     )
    ...     await service.run()
"""

from beacon_id.core.config import Config
from beacon_id.core.exceptions import (
    BeaconError,
    ConfigurationError,
    InvoiceVerificationError,
    NetworkError,
    OnboardingError,
    PaymentError,
    ProtocolError,
    ValidationError,
    WalletError,
)
from beacon_id.core.logging import configure_logging, get_logger
from beacon_id.core.types import (
    AddressResult,
    BalanceResult,
    GatewayInfo,
    InboundMessage,
    InvoiceResult,
    OutboundMessage,
    PaymentOutcome,
    PendingPayment,
    PendingPaymentKind,
    WalletConfig,
    WalletKind,
)
from beacon_id.service import IdentityService

__version__ = "0.1.0"

__all__ = [
    # Main entry
    "IdentityService",
    "Config",
    # Types
    "AddressResult",
    "BalanceResult",
    "GatewayInfo",
    "InboundMessage",
    "InvoiceResult",
    "OutboundMessage",
    "PaymentOutcome",
    "PendingPayment",
    "PendingPaymentKind",
    "WalletConfig",
    "WalletKind",
    # Exceptions
    "BeaconError",
    "ConfigurationError",
    "InvoiceVerificationError",
    "NetworkError",
    "OnboardingError",
    "PaymentError",
    "ProtocolError",
    "ValidationError",
    "WalletError",
    # Logging
    "configure_logging",
    "get_logger",
]
