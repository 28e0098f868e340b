import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from coincurve import PrivateKey

from beacon_id.core.crypto import SecretCipher
from beacon_id.core.types import GatewayInfo, InboundMessage
from beacon_id.identity.approval import ApprovalGate
from beacon_id.identity.onboarding import OnboardingFlow
from beacon_id.identity.replies import ReplySender
from beacon_id.identity.store import GatewayMap, WalletStore
from beacon_id.identity.worker import IdentityWorker
from beacon_id.messaging.queue import InMemoryQueue
from beacon_id.notify.notifier import Notifier
from beacon_id.payment.dispatcher import PaymentDispatcher
from beacon_id.payment.pending import PendingPaymentStore
from beacon_id.storage.memory import InMemoryStorage
from beacon_id.wallet.backends import WalletBackendFactory
from beacon_id.wallet.http_wallet import NwcliClient
from beacon_id.wallet.nostr import NostrEvent, nip04_decrypt, nip04_encrypt, public_key_hex
from beacon_id.wallet.nwc import RESPONSE_KIND
from beacon_id.wallet.relay import RelayTransport
from beacon_id.wallet.resolver import WalletResolver
from beacon_id.wallet.service import WalletService

PREIMAGE = "a" * 64


class FakeWalletRelay(RelayTransport):
    """
    Plays the NWC wallet service end of a relay.

    Decrypts each request with the wallet key, answers from ``results`` /
    ``errors`` and signs the encrypted reply like a real wallet would.
    """

    def __init__(self) -> None:
        self.wallet_key = PrivateKey()
        self.wallet_pubkey = public_key_hex(self.wallet_key)
        self.results: dict[str, dict[str, Any]] = {}
        self.errors: dict[str, dict[str, Any]] = {}
        self.raises: dict[str, Exception] = {}
        self.requests: list[dict[str, Any]] = []
        self.relay_urls: list[str] = []

    def factory(self, relay_url: str) -> "FakeWalletRelay":
        self.relay_urls.append(relay_url)
        return self

    def connect_uri(self, lud16: str | None = None, relay: str = "wss://relay.example.com") -> str:
        secret = PrivateKey().secret.hex()
        uri = f"nostr+walletconnect://{self.wallet_pubkey}?relay={relay}&secret={secret}"
        if lud16:
            uri += f"&lud16={lud16}"
        return uri

    def methods(self) -> list[str]:
        return [r["method"] for r in self.requests]

    async def request(self, event, reply_filter, timeout=None):
        body = json.loads(nip04_decrypt(self.wallet_key, event.pubkey, event.content))
        self.requests.append(body)
        method = body["method"]

        if method in self.raises:
            raise self.raises[method]
        if method in self.errors:
            payload = {"result_type": method, "error": self.errors[method]}
        else:
            payload = {"result_type": method, "result": self.results.get(method, {})}

        reply = NostrEvent(
            pubkey=self.wallet_pubkey,
            kind=RESPONSE_KIND,
            content=nip04_encrypt(self.wallet_key, event.pubkey, json.dumps(payload)),
            tags=[["p", event.pubkey], ["e", event.id]],
        )
        return reply.sign(self.wallet_key)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def cipher():
    return SecretCipher(SecretCipher.generate_key())


@pytest.fixture
def wallet_store(storage, cipher):
    return WalletStore(storage, cipher)


@pytest.fixture
def gateway_map(storage):
    return GatewayMap(storage)


@pytest.fixture
def fake_wallet():
    return FakeWalletRelay()


@pytest.fixture
def outbound():
    return InMemoryQueue("identity:out")


GATEWAY_NPUB = "npub1gateway"
USER = "15551234567"


class IdentityHarness:
    """Onboarding, approval and the worker wired over in-memory parts."""

    def __init__(self, storage, wallet_store, gateway_map, fake_wallet, outbound) -> None:
        self.storage = storage
        self.wallet_store = wallet_store
        self.gateway_map = gateway_map
        self.fake_wallet = fake_wallet
        self.outbound = outbound
        self.inbound = InMemoryQueue("identity:in")
        self.nwcli_routes: dict[str, tuple[int, Any]] = {}
        self.nwcli_requests: list[httpx.Request] = []

        self.nwcli = NwcliClient(
            base_url="http://nwcli.test",
            master_wallet="master",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self._nwcli_handler)),
        )
        factory = WalletBackendFactory(self.nwcli, transport_factory=fake_wallet.factory)
        resolver = WalletResolver(wallet_store)
        self.wallets = WalletService(resolver, factory)
        self.notifier = AsyncMock(spec=Notifier)
        self.replies = ReplySender(outbound, gateway_map, GATEWAY_NPUB)
        self.onboarding = OnboardingFlow(
            wallet_store, gateway_map, self.wallets, self.nwcli, self.notifier, self.replies, GATEWAY_NPUB
        )
        self.pending = PendingPaymentStore(storage)
        self.dispatcher = PaymentDispatcher(resolver, factory)
        self.approval = ApprovalGate(self.pending, self.dispatcher, self.wallets, self.notifier, self.replies)
        self.worker = IdentityWorker(
            self.inbound, gateway_map, self.onboarding, self.approval, GATEWAY_NPUB, poll_interval=0.01
        )

    def _nwcli_handler(self, request: httpx.Request) -> httpx.Response:
        self.nwcli_requests.append(request)
        for path, (status, payload) in self.nwcli_routes.items():
            if request.url.path.startswith(path):
                return httpx.Response(status, json=payload)
        return httpx.Response(404, json={"error": "not found"})

    def message(self, text: str, sender: str = USER, bot_id: str | None = None) -> InboundMessage:
        context = {"botid": bot_id} if bot_id else {}
        return InboundMessage(sender=sender, gateway=GatewayInfo(type="whatsapp"), text=text, context=context)

    def raw(self, text: str, sender: str = USER) -> dict[str, Any]:
        return self.message(text, sender).to_dict()

    def sent(self) -> list[dict[str, Any]]:
        return self.outbound.drain()

    def bodies(self) -> list[str]:
        return [m["body"] for m in self.sent()]

    async def known_user(self, sender: str = USER) -> str:
        """Map ``sender`` to a fresh npub as if onboarding had finished."""
        npub = f"npub1{sender}"
        await self.gateway_map.upsert("whatsapp", GATEWAY_NPUB, sender, npub)
        return npub


@pytest.fixture
def harness(storage, wallet_store, gateway_map, fake_wallet, outbound):
    return IdentityHarness(storage, wallet_store, gateway_map, fake_wallet, outbound)
