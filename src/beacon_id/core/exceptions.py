"""
Exception hierarchy for Beacon Identity.

All service-specific exceptions inherit from BeaconError for easy catching.
"""

from __future__ import annotations

from typing import Any


class BeaconError(Exception):
    """
    Base exception for all Beacon Identity errors.

    Example:
        >>> try:
        ...     await dispatcher.dispatch(pending)
        ... except BeaconError as e:
        ...     print(f"Identity service error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BeaconError):
    """
    Configuration is missing or invalid.

    Raised when:
    - A required environment variable is not set
    - A wallet row lacks its credential or backend identifier
    - The wallet service base URL cannot be parsed
    """

    pass


class ValidationError(BeaconError):
    """
    Input validation error.

    Raised when:
    - A Lightning address or connect URI is malformed
    - A payment request is missing its invoice or amount
    """

    pass


class WalletError(BeaconError):
    """
    Wallet operation failed.

    Raised when:
    - A balance or invoice could not be read from a backend response
    - A wallet cannot be resolved for a user
    """

    def __init__(
        self,
        message: str,
        wallet_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.wallet_id = wallet_id


class PaymentError(BeaconError):
    """Base exception for payment-related errors."""

    def __init__(
        self,
        message: str,
        recipient: str | None = None,
        amount: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.recipient = recipient
        self.amount = amount


class ProtocolError(PaymentError):
    """
    Wallet protocol error.

    Raised when:
    - The NWC wallet answers with an error member
    - A relay rejects the request event
    - A Lightning-address discovery endpoint returns an invalid payload
    """

    def __init__(
        self,
        message: str,
        protocol: str = "unknown",
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.protocol = protocol
        self.code = code

    def __str__(self) -> str:
        return f"[{self.protocol}] {self.message}"


class InvoiceVerificationError(PaymentError):
    """
    Invoice returned for a Lightning address does not encode the requested amount.

    This is a hard failure: the invoice is never paid.
    """

    def __init__(
        self,
        message: str,
        expected_msats: int,
        actual_msats: int | None,
        recipient: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, recipient=recipient, amount=expected_msats, details=details)
        self.expected_msats = expected_msats
        self.actual_msats = actual_msats


class NetworkError(BeaconError):
    """
    Network or API communication error.

    Raised when:
    - HTTP request fails (timeout, connection error)
    - API returns a non-2xx response (``data`` holds the parsed body)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        data: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.url = url
        self.data = data

    def is_server_error(self) -> bool:
        """Check if this is a server-side error."""
        return self.status_code is not None and 500 <= self.status_code < 600


class OnboardingError(BeaconError):
    """A user could not be onboarded (identity allocation or wallet provisioning failed)."""

    pass
