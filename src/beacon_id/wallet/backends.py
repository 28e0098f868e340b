"""
Wallet backends.

Both wallet kinds expose the same capability set so the dispatcher and the
wallet service never branch on transport details:

- NwcWalletBackend: Nostr Wallet Connect wallet reached over a relay
- ApiWalletBackend: sub-account on the nwcli REST wallet service
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httpx

from beacon_id.core.exceptions import ConfigurationError, WalletError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import (
    BalanceSnapshot,
    BestEffort,
    PaymentOutcome,
    WalletConfig,
    WalletKind,
    sats_to_msats,
)
from beacon_id.wallet.http_wallet import DEFAULT_INVOICE_DESCRIPTION, NwcliClient
from beacon_id.wallet.lightning import resolve_ln_address_invoice
from beacon_id.wallet.normalizer import (
    DEFAULT_PAYMENT_FAILURE,
    extract_error_message,
    extract_invoice,
    extract_msats,
    extract_pending_msats,
    find_preimage,
    interpret_payment_response,
)
from beacon_id.wallet.nwc import NwcClient
from beacon_id.wallet.relay import RelayTransport, WebsocketRelay


class WalletBackend(ABC):
    """
    Abstract base class for wallet backends.

    Remote failures raise; they are never retried here.
    """

    def __init__(self, wallet: WalletConfig) -> None:
        self._wallet = wallet

    @property
    def wallet(self) -> WalletConfig:
        return self._wallet

    @property
    @abstractmethod
    def kind(self) -> WalletKind:
        """Return the wallet kind this backend drives."""
        ...

    @abstractmethod
    async def pay_invoice(self, invoice: str) -> PaymentOutcome:
        """Pay a BOLT11 invoice."""
        ...

    @abstractmethod
    async def pay_address(self, ln_address: str, amount_sats: int) -> PaymentOutcome:
        """Pay ``amount_sats`` to a Lightning address."""
        ...

    @abstractmethod
    async def create_invoice(
        self, amount_sats: int, description: str = DEFAULT_INVOICE_DESCRIPTION
    ) -> str:
        """Create an invoice and return it. Raises WalletError when none is returned."""
        ...

    @abstractmethod
    async def get_balance(self) -> int:
        """Current balance in msats. Raises WalletError when unreadable."""
        ...

    @abstractmethod
    async def get_address(self) -> str | None:
        """Lightning address receiving into this wallet, if known."""
        ...


class NwcWalletBackend(WalletBackend):
    """Wallet driven over Nostr Wallet Connect."""

    def __init__(
        self,
        wallet: WalletConfig,
        client: NwcClient,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(wallet)
        self._client = client
        self._http_client = http_client

    @property
    def kind(self) -> WalletKind:
        return WalletKind.NWC

    async def pay_invoice(self, invoice: str) -> PaymentOutcome:
        result = await self._client.pay_invoice(invoice)
        preimage = find_preimage(result)
        if preimage:
            return PaymentOutcome(success=True, receipt=preimage)
        return PaymentOutcome.failed(DEFAULT_PAYMENT_FAILURE)

    async def pay_address(self, ln_address: str, amount_sats: int) -> PaymentOutcome:
        invoice = await resolve_ln_address_invoice(ln_address, amount_sats, self._http_client)
        outcome = await self.pay_invoice(invoice)
        outcome.request_msats = sats_to_msats(amount_sats)
        return outcome

    async def create_invoice(
        self, amount_sats: int, description: str = DEFAULT_INVOICE_DESCRIPTION
    ) -> str:
        result = await self._client.make_invoice(sats_to_msats(amount_sats), description)
        invoice = extract_invoice(result)
        if not invoice:
            raise WalletError("Failed to create invoice.", wallet_id=self._wallet.npub)
        return invoice

    async def get_balance(self) -> int:
        result = await self._client.get_balance()
        msats = extract_msats(result)
        if msats is None:
            raise WalletError("Failed to read balance from wallet response.", wallet_id=self._wallet.npub)
        return msats

    async def get_address(self) -> str | None:
        return self._client.params.lud16 or self._wallet.ln_address


class ApiWalletBackend(WalletBackend):
    """Sub-account on the nwcli wallet service."""

    def __init__(self, wallet: WalletConfig, client: NwcliClient) -> None:
        super().__init__(wallet)
        if not wallet.api_identifier:
            raise ConfigurationError(f"Wallet for {wallet.npub} is missing API identifier.")
        self._identifier = wallet.api_identifier
        self._client = client
        self._logger = get_logger("wallet.api")

    @property
    def kind(self) -> WalletKind:
        return WalletKind.API

    @property
    def identifier(self) -> str:
        return self._identifier

    def _to_outcome(self, response: Any) -> PaymentOutcome:
        interpreted = interpret_payment_response(response)
        if interpreted.success:
            return PaymentOutcome(success=True, receipt=interpreted.preimage)
        return PaymentOutcome.failed(extract_error_message(response) or DEFAULT_PAYMENT_FAILURE)

    async def pay_invoice(self, invoice: str) -> PaymentOutcome:
        return self._to_outcome(await self._client.pay_invoice(self._identifier, invoice))

    async def pay_address(self, ln_address: str, amount_sats: int) -> PaymentOutcome:
        response = await self._client.pay_ln_address(self._identifier, ln_address, amount_sats)
        outcome = self._to_outcome(response)
        outcome.request_msats = sats_to_msats(amount_sats)
        return outcome

    async def create_invoice(
        self, amount_sats: int, description: str = DEFAULT_INVOICE_DESCRIPTION
    ) -> str:
        response = await self._client.create_invoice(self._identifier, amount_sats, description)
        invoice = extract_invoice(response)
        if invoice:
            return invoice
        reason = extract_error_message(response) or "Failed to create invoice."
        self._logger.error(f"createInvoice response for {self._identifier} has no invoice: {response!r}")
        raise WalletError(reason, wallet_id=self._identifier)

    async def get_balance(self) -> int:
        response = await self._client.fetch_balance(self._identifier)
        msats = extract_msats(response)
        if msats is None:
            self._logger.error(f"Balance response for {self._identifier} has no balance: {response!r}")
            raise WalletError("Failed to read balance from wallet response.", wallet_id=self._identifier)
        return msats

    async def get_address(self) -> str | None:
        return self._wallet.ln_address

    # ==================== Best-effort side calls ====================

    async def refresh_ledger(self) -> BestEffort[Any]:
        """Ask the service to settle its internal ledger. Never raises."""
        try:
            return BestEffort(value=await self._client.refresh_ledger(self._identifier))
        except Exception as e:
            self._logger.warning(f"refreshLedger failed for {self._identifier} (non-fatal): {e}")
            return BestEffort(error=e)

    async def snapshot(self) -> BestEffort[BalanceSnapshot]:
        """Capture balance and pending amounts. Never raises."""
        try:
            response = await self._client.fetch_balance(self._identifier)
        except Exception as e:
            self._logger.warning(f"Balance snapshot failed for {self._identifier} (non-fatal): {e}")
            return BestEffort(error=e)

        snapshot = BalanceSnapshot(
            balance_msats=extract_msats(response),
            pending_msats=extract_pending_msats(response),
        )
        self._logger.info(
            f"API wallet snapshot for {self._identifier}: "
            f"balance_msats={snapshot.balance_msats} pending_msats={snapshot.pending_msats}"
        )
        return BestEffort(value=snapshot)


class WalletBackendFactory:
    """Builds the backend matching a resolved wallet configuration."""

    def __init__(
        self,
        nwcli: NwcliClient,
        transport_factory: Callable[[str], RelayTransport] = WebsocketRelay,
        nwc_timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._nwcli = nwcli
        self._transport_factory = transport_factory
        self._nwc_timeout = nwc_timeout
        self._http_client = http_client

    def nwc_client(self, uri: str) -> NwcClient:
        return NwcClient.from_uri(
            uri, transport_factory=self._transport_factory, timeout=self._nwc_timeout
        )

    def build(self, wallet: WalletConfig) -> WalletBackend:
        """
        Raises:
            ConfigurationError: If the wallet lacks the credential its kind needs
            ValidationError: If the stored connect URI cannot be parsed
        """
        if wallet.kind == WalletKind.NWC:
            if not wallet.nwc_uri:
                raise ConfigurationError(f"Wallet for {wallet.npub} is missing NWC credentials.")
            return NwcWalletBackend(wallet, self.nwc_client(wallet.nwc_uri), self._http_client)
        return ApiWalletBackend(wallet, self._nwcli)
