"""IdentityService - wires the identity worker and its collaborators from Config."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from beacon_id.core.config import Config
from beacon_id.core.crypto import SecretCipher
from beacon_id.core.logging import configure_logging, get_logger
from beacon_id.core.types import (
    AddressResult,
    BalanceResult,
    InvoiceResult,
    PaymentOutcome,
    PendingPayment,
)
from beacon_id.identity.approval import ApprovalGate
from beacon_id.identity.onboarding import OnboardingFlow
from beacon_id.identity.replies import ReplySender
from beacon_id.identity.store import GatewayMap, WalletStore
from beacon_id.identity.worker import IdentityWorker
from beacon_id.messaging.queue import (
    IDENTITY_IN,
    IDENTITY_OUT,
    InMemoryQueue,
    MessageQueue,
    RedisQueue,
)
from beacon_id.notify.notifier import HttpNotifier, LoggingNotifier, Notifier
from beacon_id.payment.dispatcher import PaymentDispatcher
from beacon_id.payment.pending import PendingPaymentStore
from beacon_id.storage import get_storage
from beacon_id.storage.base import StorageBackend
from beacon_id.wallet.backends import WalletBackendFactory
from beacon_id.wallet.http_wallet import DEFAULT_INVOICE_DESCRIPTION, NwcliClient
from beacon_id.wallet.relay import RelayTransport, WebsocketRelay
from beacon_id.wallet.resolver import WalletResolver
from beacon_id.wallet.service import WalletService


class IdentityService:
    """
    Identity service entry point.

    Example:
        >>> async with IdentityService(Config.from_env()) as service:
        ...     await service.request_approval("15551234567", pending)
        ...     await service.run()
    """

    def __init__(
        self,
        config: Config | None = None,
        storage: StorageBackend | None = None,
        inbound: MessageQueue | None = None,
        outbound: MessageQueue | None = None,
        notifier: Notifier | None = None,
        transport_factory: Callable[[str], RelayTransport] = WebsocketRelay,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the identity service.

        Args:
            config: Service configuration (default: Config.from_env())
            storage: Storage backend (default: from config.storage_backend)
            inbound: Queue of inbound chat messages
            outbound: Queue replies are written to
            notifier: Upstream notifier (default: HttpNotifier when notify_url is set)
            transport_factory: Builds the relay transport for an NWC relay URL
            http_client: Shared httpx client for nwcli, LNURL and notifications
        """
        self._config = config or Config.from_env()
        configure_logging(level=self._config.log_level)
        self._logger = get_logger("service")
        self._logger.info(
            f"Initializing identity service (storage={self._config.storage_backend}, "
            f"nwcli={self._config.nwcli_base_url}, auth={self._config.masked_auth()})"
        )

        self._storage = storage or self._default_storage()
        self._inbound = inbound or self._default_queue(IDENTITY_IN)
        self._outbound = outbound or self._default_queue(IDENTITY_OUT)
        self._notifier = notifier or self._default_notifier(http_client)

        self._nwcli = NwcliClient.from_config(self._config, http_client=http_client)
        self._cipher = SecretCipher(self._config.encryption_key)
        self._wallet_store = WalletStore(self._storage, self._cipher)
        self._gateway_map = GatewayMap(self._storage)
        self._pending = PendingPaymentStore(self._storage)

        self._resolver = WalletResolver(self._wallet_store, self._config.shared_nwc_string)
        self._backends = WalletBackendFactory(
            self._nwcli,
            transport_factory=transport_factory,
            nwc_timeout=self._config.nwc_timeout,
            http_client=http_client,
        )
        self._wallets = WalletService(self._resolver, self._backends)
        self._dispatcher = PaymentDispatcher(self._resolver, self._backends)

        self._replies = ReplySender(self._outbound, self._gateway_map, self._config.gateway_npub)
        self._onboarding = OnboardingFlow(
            store=self._wallet_store,
            gateway_map=self._gateway_map,
            wallets=self._wallets,
            nwcli=self._nwcli,
            notifier=self._notifier,
            replies=self._replies,
            gateway_npub=self._config.gateway_npub,
        )
        self._approval = ApprovalGate(
            pending=self._pending,
            dispatcher=self._dispatcher,
            wallets=self._wallets,
            notifier=self._notifier,
            replies=self._replies,
        )
        self._worker = IdentityWorker(
            inbound=self._inbound,
            gateway_map=self._gateway_map,
            onboarding=self._onboarding,
            approval=self._approval,
            gateway_npub=self._config.gateway_npub,
        )

    def _default_storage(self) -> StorageBackend:
        kwargs: dict[str, Any] = {}
        if self._config.storage_backend == "redis" and self._config.redis_url:
            kwargs["redis_url"] = self._config.redis_url
        return get_storage(self._config.storage_backend, **kwargs)

    def _default_queue(self, name: str) -> MessageQueue:
        if self._config.storage_backend == "redis":
            return RedisQueue(name, redis_url=self._config.redis_url)
        return InMemoryQueue(name)

    def _default_notifier(self, http_client: httpx.AsyncClient | None) -> Notifier:
        if self._config.notify_url:
            return HttpNotifier(
                self._config.notify_url,
                timeout=self._config.http_timeout,
                http_client=http_client,
            )
        return LoggingNotifier()

    # ==================== Properties ====================

    @property
    def config(self) -> Config:
        return self._config

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def inbound(self) -> MessageQueue:
        return self._inbound

    @property
    def outbound(self) -> MessageQueue:
        return self._outbound

    @property
    def wallets(self) -> WalletService:
        return self._wallets

    @property
    def wallet_store(self) -> WalletStore:
        return self._wallet_store

    @property
    def gateway_map(self) -> GatewayMap:
        return self._gateway_map

    @property
    def pending(self) -> PendingPaymentStore:
        return self._pending

    @property
    def onboarding(self) -> OnboardingFlow:
        return self._onboarding

    @property
    def worker(self) -> IdentityWorker:
        return self._worker

    # ==================== Lifecycle ====================

    async def __aenter__(self) -> IdentityService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def run(self) -> None:
        """Run the message pump until ``stop``."""
        await self._worker.run()

    def stop(self) -> None:
        self._worker.stop()

    async def close(self) -> None:
        """Stop the worker and release HTTP and queue connections."""
        self._worker.stop()
        await self._nwcli.close()
        await self._notifier.close()
        await self._inbound.close()
        await self._outbound.close()
        close_storage = getattr(self._storage, "close", None)
        if close_storage is not None:
            await close_storage()

    # ==================== Operations ====================

    async def request_approval(self, gateway_user: str, payment: PendingPayment) -> None:
        """Park a payment until ``gateway_user`` replies "yes". Replaces any earlier one."""
        await self._pending.put(gateway_user, payment)

    async def dispatch(self, payment: PendingPayment) -> PaymentOutcome:
        return await self._dispatcher.dispatch(payment)

    async def get_balance(self, npub: str) -> BalanceResult:
        return await self._wallets.get_balance(npub)

    async def create_invoice(
        self,
        npub: str,
        amount_sats: int,
        description: str = DEFAULT_INVOICE_DESCRIPTION,
    ) -> InvoiceResult:
        return await self._wallets.create_invoice(npub, amount_sats, description)

    async def get_ln_address(self, npub: str) -> AddressResult:
        return await self._wallets.get_ln_address(npub)

    async def resolve_user_npub(self, gateway_user: str, gateway_type: str | None = None) -> str | None:
        """
        npub linked to a chat user.

        With ``gateway_type`` the lookup is exact for this service's gateway
        npub; without it the newest mapping for ``gateway_user`` on any
        gateway wins.
        """
        if gateway_type:
            return await self._gateway_map.resolve_user_npub(
                gateway_type, self._config.gateway_npub, gateway_user
            )
        return await self._gateway_map.resolve_user_npub_loose(gateway_user)
