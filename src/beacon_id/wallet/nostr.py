"""
Nostr primitives used by Nostr Wallet Connect.

- secp256k1 keys and bech32 ``npub`` encoding
- event id computation and BIP-340 Schnorr signatures (NIP-01)
- NIP-04 encrypted direct-message payloads (AES-256-CBC over an ECDH secret)
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import time
from dataclasses import dataclass, field
from typing import Any

import bech32
from coincurve import PrivateKey, PublicKey, PublicKeyXOnly
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from beacon_id.core.exceptions import ProtocolError, ValidationError


def public_key_hex(private_key: PrivateKey) -> str:
    """32-byte x-only public key, hex encoded."""
    return private_key.public_key.format(compressed=True)[1:].hex()


def npub_encode(pubkey_hex: str) -> str:
    """Encode an x-only public key as a bech32 ``npub``."""
    data = bech32.convertbits(bytes.fromhex(pubkey_hex), 8, 5)
    return bech32.bech32_encode("npub", data)


def npub_decode(npub: str) -> str:
    """Decode a bech32 ``npub`` to its hex public key."""
    hrp, data = bech32.bech32_decode(npub)
    if hrp != "npub" or data is None:
        raise ValidationError(f"Invalid npub: {npub!r}")
    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None or len(decoded) != 32:
        raise ValidationError(f"Invalid npub: {npub!r}")
    return bytes(decoded).hex()


def generate_identity() -> tuple[PrivateKey, str]:
    """Generate a fresh key pair; returns the private key and its npub."""
    private_key = PrivateKey()
    return private_key, npub_encode(public_key_hex(private_key))


@dataclass
class NostrEvent:
    """A signed Nostr event (NIP-01)."""

    pubkey: str
    kind: int
    content: str
    tags: list[list[str]] = field(default_factory=list)
    created_at: int = field(default_factory=lambda: int(time.time()))
    id: str = ""
    sig: str = ""

    def compute_id(self) -> str:
        serialized = json.dumps(
            [0, self.pubkey, self.created_at, self.kind, self.tags, self.content],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def sign(self, private_key: PrivateKey) -> NostrEvent:
        self.id = self.compute_id()
        self.sig = private_key.sign_schnorr(bytes.fromhex(self.id), os.urandom(32)).hex()
        return self

    def verify(self) -> bool:
        if self.compute_id() != self.id:
            return False
        try:
            key = PublicKeyXOnly(bytes.fromhex(self.pubkey))
            return key.verify(bytes.fromhex(self.sig), bytes.fromhex(self.id))
        except ValueError:
            return False

    def tag_values(self, name: str) -> list[str]:
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": self.tags,
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NostrEvent:
        try:
            return cls(
                id=str(data["id"]),
                pubkey=str(data["pubkey"]),
                created_at=int(data["created_at"]),
                kind=int(data["kind"]),
                tags=[list(map(str, tag)) for tag in data.get("tags", [])],
                content=str(data.get("content", "")),
                sig=str(data["sig"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed event: {e}", protocol="nostr") from e


def _shared_secret(private_key: PrivateKey, pubkey_hex: str) -> bytes:
    """NIP-04 shared secret: x coordinate of the ECDH point, unhashed."""
    point = PublicKey(b"\x02" + bytes.fromhex(pubkey_hex)).multiply(private_key.secret)
    return point.format(compressed=True)[1:]


def nip04_encrypt(private_key: PrivateKey, pubkey_hex: str, plaintext: str) -> str:
    key = _shared_secret(private_key, pubkey_hex)
    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{base64.b64encode(ciphertext).decode()}?iv={base64.b64encode(iv).decode()}"


def nip04_decrypt(private_key: PrivateKey, pubkey_hex: str, payload: str) -> str:
    try:
        encoded, _, iv_part = payload.partition("?iv=")
        ciphertext = base64.b64decode(encoded)
        iv = base64.b64decode(iv_part)
        key = _shared_secret(private_key, pubkey_hex)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
    except ValueError as e:
        raise ProtocolError(f"Could not decrypt wallet response: {e}", protocol="nip04") from e
