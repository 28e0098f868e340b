"""WalletResolver - loads a user's wallet configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from beacon_id.core.logging import get_logger
from beacon_id.core.types import WalletConfig, WalletKind

if TYPE_CHECKING:
    from beacon_id.identity.store import WalletStore


class WalletResolver:
    """
    Resolves the wallet a user pays from.

    A stored row wins. Without one, the process-wide shared NWC wallet is
    used when configured. The NWC credential is decrypted on every call.
    """

    def __init__(self, store: WalletStore, shared_nwc_string: str | None = None) -> None:
        self._store = store
        self._shared_nwc_string = (shared_nwc_string or "").strip() or None
        self._logger = get_logger("resolver")

    async def resolve(self, npub: str) -> WalletConfig | None:
        row = await self._store.get_row(npub)

        if row is None:
            if self._shared_nwc_string:
                return WalletConfig(
                    npub=npub,
                    kind=WalletKind.NWC,
                    nwc_uri=self._shared_nwc_string,
                    shared=True,
                )
            return None

        kind = WalletKind.from_string(str(row.get("wallet_type") or ""))
        ln_address = row.get("ln_address") or None

        if kind == WalletKind.NWC:
            encrypted = row.get("encrypted_nwc_string")
            if not encrypted:
                self._logger.warning(f"NWC wallet row for {npub} has no credential")
                return None
            return WalletConfig(
                npub=npub,
                kind=WalletKind.NWC,
                nwc_uri=self._store.cipher.decrypt(encrypted),
                ln_address=ln_address,
            )

        if kind == WalletKind.API:
            identifier = row.get("api_identifier")
            if not identifier:
                self._logger.warning(f"API wallet row for {npub} has no identifier")
                return None
            return WalletConfig(
                npub=npub,
                kind=WalletKind.API,
                ln_address=ln_address,
                api_identifier=identifier,
                api_subaccount_id=row.get("api_subaccount_id") or None,
                api_label=row.get("api_label") or None,
            )

        self._logger.warning(f"Unknown wallet type for {npub}: {row.get('wallet_type')!r}")
        return None
