"""
Response normalization for wallet backends.

Wallet services do not share a response schema, so every signal we need
(success, preimage, invoice, error, balance, pending amount) is mined from
the raw JSON tree by a fixed, ordered list of lookups:

1. the value itself, when it already has the right shape
2. a known set of field names on the current object
3. depth-first descent into nested values, in the order they appear

The first match wins. Every extractor is total: it never raises, and it
returns ``None`` (or ``False``) once ``MAX_DEPTH`` is exceeded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from beacon_id.core.types import JsonValue, msats_to_sats

MAX_DEPTH = 64

AFFIRMATIVE_STATUSES = frozenset({"ok", "success", "paid", "settled", "completed"})
NEGATIVE_STATUSES = frozenset({"error", "failed", "rejected"})

PREIMAGE_KEYS = ("preimage", "paymentPreimage", "preImage")
INVOICE_KEYS = ("invoice", "pr", "paymentRequest", "bolt11")
ERROR_KEYS = ("error", "message", "reason", "detail", "description")
BALANCE_KEYS = ("balanceMsats", "balance_msats", "msats", "amountMsats", "balance")
PENDING_KEYS = ("pendingMsats", "pending_msats", "pendingAmountMsats", "pending")
NESTING_KEYS = ("data", "context", "result")

GENERIC_ERROR_STATUS_MESSAGE = "Remote wallet API reported an error status."
DEFAULT_PAYMENT_FAILURE = "Payment was rejected or failed."

_PREIMAGE_RE = re.compile(r"^[0-9a-f]{64}$")


def _children(value: JsonValue) -> list[Any]:
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, list):
        return list(value)
    return []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_present(value: Any) -> bool:
    """Truthiness where empty containers still count as present."""
    if value is None or value is False:
        return False
    if isinstance(value, str) or _is_number(value):
        return bool(value)
    return True


# ==================== Success ====================


def _status_verdict(value: str) -> bool | None:
    normalized = value.strip().lower()
    if normalized in AFFIRMATIVE_STATUSES:
        return True
    if normalized in NEGATIVE_STATUSES:
        return False
    return None


def find_success_flag(value: JsonValue, _depth: int = 0) -> bool | None:
    """
    Find an explicit success/failure signal.

    An object's ``success`` boolean wins, then its ``status`` string, then
    its ``state`` string. A ``status`` string that is neither affirmative
    nor negative ends the search with ``None``. Nested ``False`` booleans
    are not treated as failure.
    """
    if _depth > MAX_DEPTH or value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _status_verdict(value)

    if isinstance(value, dict):
        if isinstance(value.get("success"), bool):
            return value["success"]
        if isinstance(value.get("status"), str):
            return _status_verdict(value["status"])
        if isinstance(value.get("state"), str):
            return _status_verdict(value["state"])

    for nested in _children(value):
        if nested is False:
            continue
        found = find_success_flag(nested, _depth + 1)
        if found is not None:
            return found
    return None


def has_pay_result(value: JsonValue, _depth: int = 0) -> bool:
    """True if a ``payResult`` member is present anywhere in the tree."""
    if _depth > MAX_DEPTH:
        return False
    if isinstance(value, dict) and _is_present(value.get("payResult")):
        return True
    return any(has_pay_result(nested, _depth + 1) for nested in _children(value))


# ==================== Preimage ====================


def is_preimage(value: Any) -> bool:
    return isinstance(value, str) and _PREIMAGE_RE.match(value) is not None


def find_preimage(value: JsonValue, _depth: int = 0) -> str | None:
    """Find a 64-char lowercase hex payment preimage."""
    if _depth > MAX_DEPTH or value is None:
        return None
    if is_preimage(value):
        return value  # type: ignore[return-value]

    if isinstance(value, dict):
        for key in PREIMAGE_KEYS:
            if is_preimage(value.get(key)):
                return value[key]

    for nested in _children(value):
        found = find_preimage(nested, _depth + 1)
        if found:
            return found
    return None


# ==================== Invoice ====================


def looks_like_invoice(value: Any) -> bool:
    return isinstance(value, str) and value.lower().startswith("ln") and len(value) > 10


def extract_invoice(value: JsonValue, _depth: int = 0) -> str | None:
    """Find a BOLT11-looking invoice string."""
    if _depth > MAX_DEPTH:
        return None
    if looks_like_invoice(value):
        return value  # type: ignore[return-value]
    if not isinstance(value, (dict, list)):
        return None

    if isinstance(value, dict):
        for key in INVOICE_KEYS:
            if looks_like_invoice(value.get(key)):
                return value[key]

    for nested in _children(value):
        if looks_like_invoice(nested):
            return nested
        if isinstance(nested, (dict, list)):
            found = extract_invoice(nested, _depth + 1)
            if found:
                return found
    return None


# ==================== Errors ====================


def extract_error_message(value: JsonValue, _depth: int = 0) -> str | None:
    """Find a human-readable error message."""
    if _depth > MAX_DEPTH or value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if not isinstance(value, (dict, list)):
        return None

    if isinstance(value, dict):
        for key in ERROR_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
        status = value.get("status")
        if isinstance(status, str) and status.lower() == "error":
            return GENERIC_ERROR_STATUS_MESSAGE

    for nested in _children(value):
        if isinstance(nested, (dict, list)):
            found = extract_error_message(nested, _depth + 1)
            if found:
                return found
    return None


def extract_message_from_error(error: BaseException | JsonValue) -> str | None:
    """
    Best human-readable reason for a failed remote call.

    HTTP errors carry the parsed response body on ``data``; a message found
    there is preferred over the exception text.
    """
    if error is None:
        return None
    if isinstance(error, str):
        return error or None
    if isinstance(error, BaseException):
        data_message = extract_error_message(getattr(error, "data", None))
        if data_message:
            return data_message
        message = getattr(error, "message", None)
        if isinstance(message, str) and message:
            return message
        return str(error) or None
    if isinstance(error, dict):
        if error.get("data"):
            data_message = extract_error_message(error["data"])
            if data_message:
                return data_message
        if isinstance(error.get("message"), str):
            return error["message"]
    return None


# ==================== Amounts ====================


def _to_msats(value: Any) -> int | None:
    if _is_number(value):
        if isinstance(value, float) and value != value:  # NaN
            return None
        try:
            return int(value)
        except (OverflowError, ValueError):
            return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            parsed = Decimal(stripped)
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
        return int(parsed)
    return None


def _extract_amount(
    value: JsonValue,
    direct_keys: tuple[str, ...],
    list_key: str,
    depth: int,
) -> int | None:
    if depth > MAX_DEPTH or value is None:
        return None
    scalar = _to_msats(value)
    if scalar is not None:
        return scalar
    if not isinstance(value, dict):
        return None

    for key in direct_keys:
        if key in value:
            found = _extract_amount(value[key], direct_keys, list_key, depth + 1)
            if found is not None:
                return found
    for key in NESTING_KEYS:
        if key in value:
            found = _extract_amount(value[key], direct_keys, list_key, depth + 1)
            if found is not None:
                return found
    entries = value.get(list_key)
    if isinstance(entries, list):
        for entry in entries:
            found = _extract_amount(entry, direct_keys, list_key, depth + 1)
            if found is not None:
                return found
    return None


def extract_msats(value: JsonValue) -> int | None:
    """Find a balance amount in millisatoshis."""
    return _extract_amount(value, BALANCE_KEYS, "balances", 0)


def extract_pending_msats(value: JsonValue) -> int | None:
    """Find a pending (in-flight) amount in millisatoshis."""
    return _extract_amount(value, PENDING_KEYS, "pending", 0)


# ==================== Verdicts ====================


@dataclass
class PaymentInterpretation:
    """Success verdict and preimage mined from a payment response."""

    success: bool
    preimage: str | None = None


def interpret_payment_response(response: JsonValue) -> PaymentInterpretation:
    """
    Decide whether a payment response means the payment went through.

    Fallback chain: explicit flag, then a ``payResult`` member, then a
    non-negative balance, then the presence of a preimage.
    """
    preimage = find_preimage(response)
    success = find_success_flag(response)
    if success is None and has_pay_result(response):
        success = True
    if success is None:
        msats = extract_msats(response)
        if msats is not None and msats >= 0:
            success = True
    if success is None:
        success = preimage is not None
    return PaymentInterpretation(success=success, preimage=preimage)


def build_balance_insight(
    balance_msats: int | None,
    pending_msats: int | None,
    request_msats: int | None = None,
) -> str | None:
    """
    Summarize balance context for a failure message.

    Example: "(available 90 sats, balance 100 sats, pending 10 sats, request 500 sats)"
    """
    available_msats = (
        max(balance_msats - (pending_msats or 0), 0) if balance_msats is not None else None
    )
    parts = []
    if available_msats is not None:
        parts.append(f"available {msats_to_sats(available_msats)} sats")
    if balance_msats is not None:
        parts.append(f"balance {msats_to_sats(balance_msats)} sats")
    if pending_msats is not None:
        parts.append(f"pending {msats_to_sats(pending_msats)} sats")
    if request_msats is not None:
        parts.append(f"request {msats_to_sats(request_msats)} sats")
    if not parts:
        return None
    return f"({', '.join(parts)})"
