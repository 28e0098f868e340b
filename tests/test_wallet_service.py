"""Tests for WalletService."""

import httpx
import pytest

from beacon_id.core.exceptions import NetworkError
from beacon_id.core.types import AddressResult
from beacon_id.wallet.backends import WalletBackendFactory
from beacon_id.wallet.http_wallet import NwcliClient
from beacon_id.wallet.resolver import WalletResolver
from beacon_id.wallet.service import WalletService


def nwcli_replying(status: int, payload: dict) -> NwcliClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)

    return NwcliClient(
        base_url="http://nwcli.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def make_service(wallet_store, fake_wallet):
    def _make(nwcli: NwcliClient | None = None, shared: str | None = None) -> WalletService:
        factory = WalletBackendFactory(
            nwcli or nwcli_replying(200, {}), transport_factory=fake_wallet.factory
        )
        return WalletService(WalletResolver(wallet_store, shared), factory)

    return _make


class TestGetBalance:
    """Tests for balance lookups."""

    @pytest.mark.asyncio
    async def test_nwc_balance_in_sats(self, make_service, wallet_store, fake_wallet) -> None:
        fake_wallet.results["get_balance"] = {"balance": 21_999}
        await wallet_store.save_nwc_wallet("npub1a", fake_wallet.connect_uri())

        result = await make_service().get_balance("npub1a")

        assert result.success
        assert result.balance == 21

    @pytest.mark.asyncio
    async def test_api_balance(self, make_service, wallet_store) -> None:
        await wallet_store.save_api_wallet("npub1a", "beacon-web-abc", None, None)

        result = await make_service(nwcli_replying(200, {"balanceMsats": 5000})).get_balance("npub1a")

        assert result.balance == 5

    @pytest.mark.asyncio
    async def test_no_wallet(self, make_service) -> None:
        result = await make_service().get_balance("npub1none")

        assert not result.success
        assert result.error == "No wallet found for user npub1none."

    @pytest.mark.asyncio
    async def test_remote_error_is_readable(self, make_service, wallet_store) -> None:
        await wallet_store.save_api_wallet("npub1a", "beacon-web-abc", None, None)
        service = make_service(nwcli_replying(500, {"error": "Ledger unavailable"}))

        result = await service.get_balance("npub1a")

        assert not result.success
        assert result.error == "Ledger unavailable"

    @pytest.mark.asyncio
    async def test_shared_wallet(self, make_service, fake_wallet) -> None:
        fake_wallet.results["get_balance"] = {"balance": 1000}

        result = await make_service(shared=fake_wallet.connect_uri()).get_balance("npub1none")

        assert result.balance == 1


class TestCreateInvoice:
    @pytest.mark.asyncio
    async def test_nwc_invoice(self, make_service, wallet_store, fake_wallet) -> None:
        fake_wallet.results["make_invoice"] = {"invoice": "lnbc1000n1pmade"}
        await wallet_store.save_nwc_wallet("npub1a", fake_wallet.connect_uri())

        result = await make_service().create_invoice("npub1a", 100, "Coffee")

        assert result.success
        assert result.invoice == "lnbc1000n1pmade"
        assert fake_wallet.requests[0]["params"] == {"amount": 100_000, "description": "Coffee"}

    @pytest.mark.asyncio
    async def test_missing_invoice(self, make_service, wallet_store, fake_wallet) -> None:
        await wallet_store.save_nwc_wallet("npub1a", fake_wallet.connect_uri())

        result = await make_service().create_invoice("npub1a", 100)

        assert not result.success
        assert result.error == "Failed to create invoice."


class TestGetLnAddress:
    """Tests for Lightning address lookups."""

    @pytest.mark.asyncio
    async def test_lud16_preferred(self, make_service, wallet_store, fake_wallet) -> None:
        await wallet_store.save_nwc_wallet(
            "npub1a", fake_wallet.connect_uri(lud16="uri@example.com"), ln_address="row@example.com"
        )

        result = await make_service().get_ln_address("npub1a")

        assert result == AddressResult(success=True, ln_address="uri@example.com")

    @pytest.mark.asyncio
    async def test_stored_address_fallback(self, make_service, wallet_store, fake_wallet) -> None:
        await wallet_store.save_nwc_wallet("npub1a", fake_wallet.connect_uri(), ln_address="row@example.com")

        result = await make_service().get_ln_address("npub1a")

        assert result.ln_address == "row@example.com"

    @pytest.mark.asyncio
    async def test_nwc_without_address(self, make_service, wallet_store, fake_wallet) -> None:
        await wallet_store.save_nwc_wallet("npub1a", fake_wallet.connect_uri())

        result = await make_service().get_ln_address("npub1a")

        assert result.error == "Lightning Address not found."

    @pytest.mark.asyncio
    async def test_generated_wallet_without_address(self, make_service, wallet_store) -> None:
        await wallet_store.save_api_wallet("npub1a", "beacon-web-abc", None, None)

        result = await make_service().get_ln_address("npub1a")

        assert not result.success
        assert result.error == "Lightning Address not available for generated wallets."

    @pytest.mark.asyncio
    async def test_generated_wallet_with_address(self, make_service, wallet_store) -> None:
        await wallet_store.save_api_wallet("npub1a", "beacon-web-abc", None, None)
        await wallet_store.update_ln_address("npub1a", "me@example.com")

        result = await make_service().get_ln_address("npub1a")

        assert result.ln_address == "me@example.com"


class TestValidateConnectUri:
    @pytest.mark.asyncio
    async def test_valid(self, make_service, fake_wallet) -> None:
        assert await make_service().validate_connect_uri(fake_wallet.connect_uri())
        assert fake_wallet.methods() == ["get_balance"]

    @pytest.mark.asyncio
    async def test_unreachable(self, make_service, fake_wallet) -> None:
        fake_wallet.raises["get_balance"] = NetworkError("Relay connection failed")

        assert not await make_service().validate_connect_uri(fake_wallet.connect_uri())

    @pytest.mark.asyncio
    async def test_malformed(self, make_service) -> None:
        assert not await make_service().validate_connect_uri("nostr+walletconnect://nope")
