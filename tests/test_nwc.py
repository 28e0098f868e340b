"""Tests for the Nostr Wallet Connect client."""

import pytest
from coincurve import PrivateKey

from beacon_id.core.exceptions import NetworkError, ProtocolError, ValidationError
from beacon_id.wallet.nostr import public_key_hex
from beacon_id.wallet.nwc import NwcClient, looks_like_connect_uri, parse_connect_uri

PUBKEY = "b" * 64
SECRET = "c" * 64


class TestParseConnectUri:
    """Tests for connect URI parsing."""

    def test_full_uri(self) -> None:
        params = parse_connect_uri(
            f"nostr+walletconnect://{PUBKEY}?relay=wss://relay.one&relay=wss://relay.two"
            f"&secret={SECRET}&lud16=alice@example.com"
        )

        assert params.wallet_pubkey == PUBKEY
        assert params.relays == ("wss://relay.one", "wss://relay.two")
        assert params.secret == SECRET
        assert params.lud16 == "alice@example.com"
        assert SECRET not in repr(params)

    def test_without_slashes(self) -> None:
        params = parse_connect_uri(f"nostr+walletconnect:{PUBKEY}?relay=wss://r&secret={SECRET}")

        assert params.wallet_pubkey == PUBKEY
        assert params.lud16 is None

    @pytest.mark.parametrize(
        ("uri", "message"),
        [
            (f"https://{PUBKEY}?relay=wss://r&secret={SECRET}", "Not a Nostr"),
            (f"nostr+walletconnect://abc?relay=wss://r&secret={SECRET}", "wallet pubkey"),
            (f"nostr+walletconnect://{PUBKEY}?secret={SECRET}", "no relay"),
            (f"nostr+walletconnect://{PUBKEY}?relay=wss://r&secret=xyz", "secret"),
        ],
    )
    def test_invalid(self, uri: str, message: str) -> None:
        with pytest.raises(ValidationError, match=message):
            parse_connect_uri(uri)

    def test_shape_check(self) -> None:
        assert looks_like_connect_uri("  NOSTR+WALLETCONNECT://abc")
        assert not looks_like_connect_uri("yes")


class TestNwcClient:
    """Tests for NwcClient against a fake wallet service."""

    @pytest.mark.asyncio
    async def test_get_balance(self, fake_wallet) -> None:
        fake_wallet.results["get_balance"] = {"balance": 21_000}
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)

        result = await client.get_balance()

        assert result == {"balance": 21_000}
        assert fake_wallet.requests == [{"method": "get_balance", "params": {}}]
        assert fake_wallet.relay_urls == ["wss://relay.example.com"]

    @pytest.mark.asyncio
    async def test_request_params(self, fake_wallet) -> None:
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)

        await client.pay_invoice("lnbc10n1pexample")
        await client.make_invoice(5000, "Beacon Invoice")
        await client.make_invoice(5000)

        assert [r["params"] for r in fake_wallet.requests] == [
            {"invoice": "lnbc10n1pexample"},
            {"amount": 5000, "description": "Beacon Invoice"},
            {"amount": 5000},
        ]

    @pytest.mark.asyncio
    async def test_error_reply_raises(self, fake_wallet) -> None:
        fake_wallet.errors["pay_invoice"] = {"code": "INSUFFICIENT_BALANCE", "message": "Not enough funds"}
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)

        with pytest.raises(ProtocolError) as exc_info:
            await client.pay_invoice("lnbc10n1pexample")

        assert exc_info.value.code == "INSUFFICIENT_BALANCE"
        assert exc_info.value.message == "Not enough funds"

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, fake_wallet) -> None:
        fake_wallet.raises["get_balance"] = NetworkError("Relay connection failed")
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)

        with pytest.raises(NetworkError):
            await client.get_balance()

    @pytest.mark.asyncio
    async def test_reply_from_other_key_rejected(self, fake_wallet, monkeypatch) -> None:
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)
        impostor = PrivateKey()
        genuine = fake_wallet.request

        async def forged(event, reply_filter, timeout=None):
            reply = await genuine(event, reply_filter, timeout)
            reply.pubkey = public_key_hex(impostor)
            return reply.sign(impostor)

        monkeypatch.setattr(fake_wallet, "request", forged)

        with pytest.raises(ProtocolError, match="signature"):
            await client.get_balance()

    @pytest.mark.asyncio
    async def test_tampered_reply_rejected(self, fake_wallet, monkeypatch) -> None:
        client = NwcClient.from_uri(fake_wallet.connect_uri(), transport_factory=fake_wallet.factory)
        genuine = fake_wallet.request

        async def tampered(event, reply_filter, timeout=None):
            reply = await genuine(event, reply_filter, timeout)
            reply.content = reply.content + "x"
            return reply

        monkeypatch.setattr(fake_wallet, "request", tampered)

        with pytest.raises(ProtocolError, match="signature"):
            await client.get_balance()
