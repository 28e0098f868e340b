"""
Lightning helpers: BOLT11 amount decoding and Lightning-address resolution.

A Lightning address (``name@domain``) is turned into a one-time invoice via
LNURL-pay: fetch the pay parameters from
``https://<domain>/.well-known/lnurlp/<name>``, then call the advertised
callback with the amount in msats. The returned invoice must encode exactly
the requested amount, otherwise it is rejected before any payment is made.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import bolt11
import httpx

from beacon_id.core.exceptions import InvoiceVerificationError, ProtocolError, ValidationError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import sats_to_msats

logger = get_logger("lightning")


def decode_invoice_msats(invoice: str) -> int | None:
    """
    Amount encoded in a BOLT11 invoice, in msats.

    Returns None for amountless or undecodable invoices.
    """
    try:
        decoded = bolt11.decode(invoice)
    except Exception as e:
        logger.warning(f"Failed to decode invoice amount: {e}")
        return None
    amount = decoded.amount_msat
    return int(amount) if amount is not None else None


def split_ln_address(ln_address: str) -> tuple[str, str]:
    """Split ``name@domain`` into its parts."""
    name, sep, domain = ln_address.strip().partition("@")
    if not sep or not name or not domain or "@" in domain:
        raise ValidationError(f"Invalid Lightning Address format: {ln_address!r}")
    return name, domain


def lnurlp_url(ln_address: str) -> str:
    """Well-known LNURL-pay discovery URL for a Lightning address."""
    name, domain = split_ln_address(ln_address)
    return f"https://{domain}/.well-known/lnurlp/{name}"


def _with_amount(callback: str, amount_msats: int) -> str:
    parts = urlsplit(callback)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "amount"]
    query.append(("amount", str(amount_msats)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


async def _get_json(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
    response = await client.get(url)
    try:
        data = response.json()
    except ValueError:
        raise ProtocolError(
            f"Non-JSON response from {url} (HTTP {response.status_code})", protocol="lnurl"
        ) from None
    if not isinstance(data, dict):
        raise ProtocolError(f"Unexpected response from {url}", protocol="lnurl")
    return data


async def resolve_ln_address_invoice(
    ln_address: str,
    amount_sats: int,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    """
    Fetch an invoice for ``amount_sats`` from a Lightning address.

    Raises:
        ValidationError: If the address is malformed
        ProtocolError: If the LNURL endpoints return an error or no invoice
        InvoiceVerificationError: If the invoice amount differs from the request
    """
    url = lnurlp_url(ln_address)
    amount_msats = sats_to_msats(amount_sats)
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)

    try:
        logger.info(f"Fetching LNURL-pay params from {url}")
        params = await _get_json(client, url)
        if str(params.get("status", "")).upper() == "ERROR" or params.get("tag") != "payRequest":
            raise ProtocolError(
                f"LNURL-pay failed: {params.get('reason') or 'Invalid response'}", protocol="lnurl"
            )
        callback = params.get("callback")
        if not isinstance(callback, str) or not callback:
            raise ProtocolError("LNURL-pay failed: missing callback", protocol="lnurl")

        callback_url = _with_amount(callback, amount_msats)
        logger.info(f"Requesting invoice from {callback_url}")
        invoice_data = await _get_json(client, callback_url)
        invoice = invoice_data.get("pr")
        if str(invoice_data.get("status", "")).upper() == "ERROR" or not invoice:
            raise ProtocolError(
                f"Failed to get invoice: {invoice_data.get('reason') or 'Invalid response'}",
                protocol="lnurl",
            )
    finally:
        if owns_client:
            await client.aclose()

    invoice_msats = decode_invoice_msats(invoice)
    if invoice_msats != amount_msats:
        raise InvoiceVerificationError(
            f"Invoice amount mismatch. Expected {amount_msats}, got {invoice_msats}",
            expected_msats=amount_msats,
            actual_msats=invoice_msats,
            recipient=ln_address,
        )

    logger.info(f"Fetched and verified invoice for {ln_address}")
    return invoice
