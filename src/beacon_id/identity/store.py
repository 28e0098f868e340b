"""
Persistence for identity data.

- WalletStore: one wallet row per user npub (``user_wallets``)
- GatewayMap: links a gateway user to their npub (``local_npub_map``)

Both sit on the pluggable StorageBackend. NWC connect URIs are written as
ciphertext only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from beacon_id.core.logging import get_logger
from beacon_id.core.types import WalletKind

if TYPE_CHECKING:
    from beacon_id.core.crypto import SecretCipher
    from beacon_id.storage.base import StorageBackend

WALLETS_COLLECTION = "user_wallets"
NPUB_MAP_COLLECTION = "local_npub_map"
NICKNAMES_COLLECTION = "nicknames"


class WalletStore:
    """Wallet rows keyed by user npub."""

    COLLECTION = WALLETS_COLLECTION

    def __init__(self, storage: StorageBackend, cipher: SecretCipher) -> None:
        self._storage = storage
        self._cipher = cipher
        self._logger = get_logger("store.wallets")

    @property
    def cipher(self) -> SecretCipher:
        return self._cipher

    async def get_row(self, npub: str) -> dict[str, Any] | None:
        return await self._storage.get(self.COLLECTION, npub)

    async def save_nwc_wallet(self, npub: str, nwc_uri: str, ln_address: str | None = None) -> None:
        """Store (or replace) an NWC wallet; any API wallet fields are cleared."""
        await self._storage.save(
            self.COLLECTION,
            npub,
            {
                "user_npub": npub,
                "wallet_type": WalletKind.NWC.value,
                "encrypted_nwc_string": self._cipher.encrypt(nwc_uri),
                "ln_address": ln_address or None,
                "api_identifier": None,
                "api_subaccount_id": None,
                "api_label": None,
            },
        )
        self._logger.info(f"Saved NWC wallet for {npub}")

    async def save_api_wallet(
        self,
        npub: str,
        identifier: str,
        subaccount_id: str | None,
        label: str | None,
    ) -> None:
        """Store (or replace) an nwcli wallet; any NWC credential is cleared."""
        await self._storage.save(
            self.COLLECTION,
            npub,
            {
                "user_npub": npub,
                "wallet_type": WalletKind.API.value,
                "encrypted_nwc_string": None,
                "ln_address": None,
                "api_identifier": identifier,
                "api_subaccount_id": subaccount_id,
                "api_label": label,
            },
        )
        self._logger.info(f"Saved API wallet for {npub}")

    async def update_ln_address(self, npub: str, ln_address: str | None) -> bool:
        """Set or clear the display address. Returns False if the user has no wallet row."""
        updated = await self._storage.update(self.COLLECTION, npub, {"ln_address": ln_address})
        if updated:
            self._logger.info(f"Updated LN Address for {npub}")
        return updated


@dataclass
class UserLinks:
    """Gateway map row for one gateway user."""

    user_npub: str
    beacon_brain_npub: str | None = None
    beacon_id_npub: str | None = None
    gateway_bot_id: str | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class GatewayMap:
    """Maps (gateway type, gateway npub, gateway user) to a user npub."""

    COLLECTION = NPUB_MAP_COLLECTION

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage
        self._logger = get_logger("store.npub_map")

    @staticmethod
    def _make_key(gateway_type: str, gateway_npub: str, gateway_user: str) -> str:
        return f"{gateway_type}:{gateway_npub}:{gateway_user}"

    async def upsert(
        self,
        gateway_type: str,
        gateway_npub: str,
        gateway_user: str,
        user_npub: str,
        beacon_brain_npub: str | None = None,
        beacon_id_npub: str | None = None,
        gateway_bot_id: str | None = None,
    ) -> None:
        """Insert or update a mapping. Optional links keep their stored value when not given."""
        key = self._make_key(gateway_type, gateway_npub, gateway_user)
        existing = await self._storage.get(self.COLLECTION, key) or {}

        row = {
            "gateway_type": gateway_type,
            "gateway_npub": gateway_npub,
            "gateway_user": gateway_user,
            "user_npub": user_npub,
            "beacon_brain_npub": _clean(beacon_brain_npub) or existing.get("beacon_brain_npub"),
            "beacon_id_npub": _clean(beacon_id_npub) or existing.get("beacon_id_npub"),
            "gateway_bot_id": _clean(gateway_bot_id) or existing.get("gateway_bot_id"),
            "created_at": existing.get("created_at") or datetime.now(timezone.utc).isoformat(),
        }
        await self._storage.save(self.COLLECTION, key, row)

    async def is_known(self, gateway_type: str, gateway_npub: str, gateway_user: str) -> bool:
        row = await self._storage.get(
            self.COLLECTION, self._make_key(gateway_type, gateway_npub, gateway_user)
        )
        return row is not None

    async def resolve_user_npub(
        self, gateway_type: str, gateway_npub: str, gateway_user: str
    ) -> str | None:
        links = await self.resolve_user_links(gateway_type, gateway_npub, gateway_user)
        return links.user_npub if links else None

    async def resolve_user_links(
        self, gateway_type: str, gateway_npub: str, gateway_user: str
    ) -> UserLinks | None:
        row = await self._storage.get(
            self.COLLECTION, self._make_key(gateway_type, gateway_npub, gateway_user)
        )
        if not row:
            return None
        return UserLinks(
            user_npub=row["user_npub"],
            beacon_brain_npub=row.get("beacon_brain_npub") or None,
            beacon_id_npub=row.get("beacon_id_npub") or None,
            gateway_bot_id=row.get("gateway_bot_id") or None,
        )

    async def resolve_user_npub_loose(self, gateway_user: str) -> str | None:
        """Most recent mapping for a gateway user, ignoring gateway type and npub."""
        rows = await self._storage.query(self.COLLECTION, {"gateway_user": gateway_user})
        if not rows:
            return None
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows[0].get("user_npub")

    async def remember_bot_id(
        self,
        gateway_type: str,
        gateway_npub: str,
        gateway_user: str,
        gateway_bot_id: str | None,
    ) -> bool:
        """Store the bot id upstream sent for an existing mapping. Returns True if it changed."""
        normalized = _clean(gateway_bot_id)
        if not normalized:
            return False
        key = self._make_key(gateway_type, gateway_npub, gateway_user)
        row = await self._storage.get(self.COLLECTION, key)
        if row is None or row.get("gateway_bot_id") == normalized:
            return False
        return await self._storage.update(self.COLLECTION, key, {"gateway_bot_id": normalized})
