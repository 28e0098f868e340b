"""Tests for Nostr keys, events and NIP-04 payloads."""

import pytest
from coincurve import PrivateKey

from beacon_id.core.exceptions import ProtocolError, ValidationError
from beacon_id.wallet.nostr import (
    NostrEvent,
    generate_identity,
    nip04_decrypt,
    nip04_encrypt,
    npub_decode,
    npub_encode,
    public_key_hex,
)


class TestKeys:
    def test_generate_identity(self) -> None:
        key, npub = generate_identity()

        assert npub.startswith("npub1")
        assert npub_decode(npub) == public_key_hex(key)

    def test_known_npub(self) -> None:
        """NIP-19 test vector."""
        pubkey = "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"
        npub = "npub180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwsyjh6w6"

        assert npub_encode(pubkey) == npub
        assert npub_decode(npub) == pubkey

    @pytest.mark.parametrize("value", ["npub1invalid", "nsec1qqqq", ""])
    def test_invalid_npub(self, value: str) -> None:
        with pytest.raises(ValidationError):
            npub_decode(value)


class TestEvents:
    """Tests for event signing."""

    def test_sign_and_verify(self) -> None:
        key = PrivateKey()
        event = NostrEvent(pubkey=public_key_hex(key), kind=1, content="hello", tags=[["p", "ab"]])

        event.sign(key)

        assert len(event.id) == 64
        assert len(event.sig) == 128
        assert event.verify()

    def test_tampered_content_fails(self) -> None:
        key = PrivateKey()
        event = NostrEvent(pubkey=public_key_hex(key), kind=1, content="hello").sign(key)

        event.content = "goodbye"

        assert not event.verify()

    def test_wrong_signer_fails(self) -> None:
        key, impostor = PrivateKey(), PrivateKey()
        event = NostrEvent(pubkey=public_key_hex(key), kind=1, content="hello").sign(impostor)

        assert not event.verify()

    def test_from_dict_round_trip(self) -> None:
        key = PrivateKey()
        event = NostrEvent(pubkey=public_key_hex(key), kind=23195, content="x", tags=[["e", "id1"]]).sign(key)

        restored = NostrEvent.from_dict(event.to_dict())

        assert restored == event
        assert restored.tag_values("e") == ["id1"]

    def test_from_dict_malformed(self) -> None:
        with pytest.raises(ProtocolError):
            NostrEvent.from_dict({"kind": 1})


class TestNip04:
    """Tests for NIP-04 encryption."""

    def test_both_sides_share_secret(self) -> None:
        alice, bob = PrivateKey(), PrivateKey()

        payload = nip04_encrypt(alice, public_key_hex(bob), '{"method":"get_balance"}')

        assert "?iv=" in payload
        assert nip04_decrypt(bob, public_key_hex(alice), payload) == '{"method":"get_balance"}'

    def test_third_party_cannot_decrypt(self) -> None:
        alice, bob, eve = PrivateKey(), PrivateKey(), PrivateKey()
        payload = nip04_encrypt(alice, public_key_hex(bob), "secret")

        try:
            recovered = nip04_decrypt(eve, public_key_hex(alice), payload)
        except ProtocolError:
            return
        assert recovered != "secret"

    def test_garbage_payload(self) -> None:
        alice, bob = PrivateKey(), PrivateKey()

        with pytest.raises(ProtocolError):
            nip04_decrypt(alice, public_key_hex(bob), "not-base64?iv=???")
