"""
Type definitions for Beacon Identity.

This module contains the enums, data classes, and type aliases used
throughout the identity service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeAlias, TypeVar

T = TypeVar("T")

# A freshly deserialized JSON document
JsonValue: TypeAlias = None | bool | int | float | str | list[Any] | dict[str, Any]

MSATS_PER_SAT = 1000


def msats_to_sats(msats: int | None) -> int | None:
    """
    Convert millisatoshis to display sats.

    Floors toward negative infinity, so amounts below 1000 msats are lost.
    """
    if msats is None:
        return None
    return int(msats) // MSATS_PER_SAT


def sats_to_msats(sats: int) -> int:
    """Convert display sats to millisatoshis."""
    return int(sats) * MSATS_PER_SAT


class WalletKind(str, Enum):
    """Backend a user's wallet lives on."""

    NWC = "nwc"  # Nostr Wallet Connect (protocol-wallet)
    API = "api"  # nwcli REST service (http-wallet)

    @classmethod
    def from_string(cls, value: str) -> WalletKind | None:
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


class PendingPaymentKind(str, Enum):
    """Shape of a payment awaiting user approval."""

    LN_INVOICE = "ln_invoice"
    LN_ADDRESS = "ln_address"


class OnboardingStep(str, Enum):
    """Steps of the onboarding conversation."""

    AWAITING_CHOICE = "awaiting_choice"
    AWAITING_NWC = "awaiting_nwc"
    AWAITING_LN_ADDRESS = "awaiting_ln_address"


@dataclass
class WalletConfig:
    """
    A user's wallet configuration.

    Exactly one backend is populated: ``nwc_uri`` for NWC wallets,
    ``api_identifier`` for nwcli wallets. ``nwc_uri`` only ever holds the
    decrypted secret in memory; the stored row keeps the ciphertext.
    """

    npub: str
    kind: WalletKind
    nwc_uri: str | None = field(default=None, repr=False)
    ln_address: str | None = None
    api_identifier: str | None = None
    api_subaccount_id: str | None = None
    api_label: str | None = None
    shared: bool = False

    @property
    def is_nwc(self) -> bool:
        return self.kind == WalletKind.NWC

    @property
    def is_api(self) -> bool:
        return self.kind == WalletKind.API


@dataclass
class PendingPayment:
    """A spend requested upstream that waits for the user's "yes"."""

    npub: str
    kind: PendingPaymentKind
    gateway_user: str = ""
    ln_invoice: str | None = None
    ln_address: str | None = None
    amount: int | None = None  # sats, for ln_address payments
    request_id: str | None = None

    @property
    def request_msats(self) -> int | None:
        """Requested amount in msats when the request carries one explicitly."""
        if self.kind == PendingPaymentKind.LN_ADDRESS and self.amount:
            return sats_to_msats(self.amount)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "npub": self.npub,
            "type": self.kind.value,
            "gateway_user": self.gateway_user,
            "ln_invoice": self.ln_invoice,
            "ln_address": self.ln_address,
            "amount": self.amount,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingPayment:
        return cls(
            npub=data["npub"],
            kind=PendingPaymentKind(data.get("type") or data.get("kind")),
            gateway_user=data.get("gateway_user") or "",
            ln_invoice=data.get("ln_invoice"),
            ln_address=data.get("ln_address"),
            amount=int(data["amount"]) if data.get("amount") is not None else None,
            request_id=data.get("request_id"),
        )


@dataclass
class PaymentOutcome:
    """Normalized result of a payment attempt. Never persisted here."""

    success: bool
    receipt: str | None = None
    error: str | None = None
    request_msats: int | None = None

    @classmethod
    def failed(cls, error: str, request_msats: int | None = None) -> PaymentOutcome:
        return cls(success=False, error=error, request_msats=request_msats)


@dataclass
class BalanceResult:
    """Balance lookup result, in display sats."""

    success: bool
    balance: int | None = None
    error: str | None = None


@dataclass
class InvoiceResult:
    """Invoice creation result."""

    success: bool
    invoice: str | None = None
    error: str | None = None


@dataclass
class AddressResult:
    """Lightning address lookup result."""

    success: bool
    ln_address: str | None = None
    error: str | None = None


@dataclass
class BalanceSnapshot:
    """Balance and pending amounts (msats) captured before a payment."""

    balance_msats: int | None = None
    pending_msats: int | None = None


@dataclass
class BestEffort(Generic[T]):
    """
    Result of a side call that must never abort the primary flow.

    Callers always consult it but never require ``ok``.
    """

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class GatewayInfo:
    """Chat gateway a message came through (e.g. "whatsapp")."""

    type: str
    npub: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.npub:
            data["npub"] = self.npub
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GatewayInfo:
        return cls(type=str(data.get("type") or ""), npub=data.get("npub") or None)


@dataclass
class InboundMessage:
    """A chat message consumed from the identity inbound queue."""

    sender: str
    gateway: GatewayInfo
    text: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None

    @property
    def bot_id(self) -> str | None:
        value = str(self.context.get("botid") or "").strip()
        return value or None

    @property
    def return_gateway_id(self) -> str | None:
        value = self.context.get("returnGatewayID")
        return str(value) if value else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "beaconID": self.message_id,
            "source": {
                "from": self.sender,
                "text": self.text,
                "gateway": self.gateway.to_dict(),
            },
            "meta": {"ctx": dict(self.context)},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboundMessage:
        source = data.get("source") or {}
        meta = data.get("meta") or {}
        return cls(
            sender=str(source.get("from") or ""),
            gateway=GatewayInfo.from_dict(source.get("gateway") or {}),
            text=str(source.get("text") or ""),
            context=dict(meta.get("ctx") or {}),
            message_id=data.get("beaconID"),
        )


@dataclass
class OutboundMessage:
    """A chat message produced to the identity outbound queue."""

    recipient: str
    body: str
    gateway: GatewayInfo
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "to": self.recipient,
            "body": self.body,
            "gateway": self.gateway.to_dict(),
            "meta": {"ctx": dict(self.context)},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutboundMessage:
        meta = data.get("meta") or {}
        return cls(
            recipient=str(data.get("to") or ""),
            body=str(data.get("body") or ""),
            gateway=GatewayInfo.from_dict(data.get("gateway") or {}),
            context=dict(meta.get("ctx") or {}),
        )


@dataclass
class OnboardingState:
    """In-memory onboarding progress for one gateway user. Not persisted."""

    step: OnboardingStep
    npub: str
