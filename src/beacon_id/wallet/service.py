"""
WalletService - per-user wallet operations for upstream callers.

Every method resolves the user's wallet and answers with a result object;
remote failures are logged and turned into a readable ``error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from beacon_id.core.exceptions import BeaconError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import (
    AddressResult,
    BalanceResult,
    InvoiceResult,
    WalletConfig,
    WalletKind,
    msats_to_sats,
)
from beacon_id.wallet.http_wallet import DEFAULT_INVOICE_DESCRIPTION
from beacon_id.wallet.normalizer import extract_message_from_error
from beacon_id.wallet.nwc import parse_connect_uri

if TYPE_CHECKING:
    from beacon_id.wallet.backends import WalletBackend, WalletBackendFactory
    from beacon_id.wallet.resolver import WalletResolver

UNKNOWN_ERROR = "An unknown error occurred."


class WalletService:
    """Balance, invoice and address lookups for a user's wallet."""

    def __init__(self, resolver: WalletResolver, backends: WalletBackendFactory) -> None:
        self._resolver = resolver
        self._backends = backends
        self._logger = get_logger("wallet.service")

    async def _backend_for(self, npub: str) -> tuple[WalletBackend | None, str | None]:
        wallet = await self._resolver.resolve(npub)
        if wallet is None:
            return None, f"No wallet found for user {npub}."
        try:
            return self._backends.build(wallet), None
        except BeaconError as e:
            return None, e.message

    def _describe_failure(self, operation: str, npub: str, error: Exception) -> str:
        self._logger.error(f"{operation} failed for {npub}: {error}", exc_info=True)
        return extract_message_from_error(error) or UNKNOWN_ERROR

    async def get_balance(self, npub: str) -> BalanceResult:
        """Current balance in sats (msats floor-divided by 1000)."""
        backend, error = await self._backend_for(npub)
        if backend is None:
            return BalanceResult(success=False, error=error)
        try:
            msats = await backend.get_balance()
        except Exception as e:
            return BalanceResult(success=False, error=self._describe_failure("getBalance", npub, e))
        return BalanceResult(success=True, balance=msats_to_sats(msats))

    async def create_invoice(
        self,
        npub: str,
        amount_sats: int,
        description: str = DEFAULT_INVOICE_DESCRIPTION,
    ) -> InvoiceResult:
        backend, error = await self._backend_for(npub)
        if backend is None:
            return InvoiceResult(success=False, error=error)
        try:
            invoice = await backend.create_invoice(amount_sats, description)
        except Exception as e:
            return InvoiceResult(success=False, error=self._describe_failure("createInvoice", npub, e))
        return InvoiceResult(success=True, invoice=invoice)

    async def get_ln_address(self, npub: str) -> AddressResult:
        """
        Lightning address paying into the user's wallet.

        NWC wallets prefer the connect URI's ``lud16`` over the stored
        address. Generated wallets only have what the user told us.
        """
        wallet = await self._resolver.resolve(npub)
        if wallet is None:
            return AddressResult(success=False, error=f"No wallet found for user {npub}.")

        if wallet.kind == WalletKind.NWC:
            if not wallet.nwc_uri:
                return AddressResult(
                    success=False, error=f"Wallet for {npub} is missing NWC credentials."
                )
            lud16 = self._lud16(wallet)
            if lud16:
                return AddressResult(success=True, ln_address=lud16)
            if wallet.ln_address:
                return AddressResult(success=True, ln_address=wallet.ln_address)
            return AddressResult(success=False, error="Lightning Address not found.")

        if wallet.ln_address:
            return AddressResult(success=True, ln_address=wallet.ln_address)
        return AddressResult(
            success=False, error="Lightning Address not available for generated wallets."
        )

    def _lud16(self, wallet: WalletConfig) -> str | None:
        try:
            return parse_connect_uri(wallet.nwc_uri or "").lud16
        except BeaconError as e:
            # fall back to the stored address
            self._logger.warning(f"Could not read lud16 for {wallet.npub}: {e.message}")
            return None

    async def validate_connect_uri(self, uri: str) -> bool:
        """Probe a connect URI with a live balance call."""
        self._logger.info("Validating NWC URI...")
        try:
            await self._backends.nwc_client(uri).get_balance()
        except Exception as e:
            # the URI carries the wallet secret; never log it
            self._logger.warning(f"NWC URI validation failed: {type(e).__name__}: {e}")
            return False
        self._logger.info("NWC URI is valid.")
        return True
