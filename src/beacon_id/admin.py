"""
Administrative maintenance.

    >>> from beacon_id.admin import wipe_identity_data
    >>> cleared = await wipe_identity_data(storage)
    >>> cleared
    {'user_wallets': 3, 'local_npub_map': 3, 'nicknames': 0}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from beacon_id.core.logging import get_logger
from beacon_id.identity.store import NICKNAMES_COLLECTION, NPUB_MAP_COLLECTION, WALLETS_COLLECTION

if TYPE_CHECKING:
    from beacon_id.storage.base import StorageBackend

IDENTITY_COLLECTIONS = (WALLETS_COLLECTION, NPUB_MAP_COLLECTION, NICKNAMES_COLLECTION)

logger = get_logger("admin")


async def wipe_identity_data(storage: StorageBackend) -> dict[str, int]:
    """
    Delete every wallet row, gateway mapping and nickname.

    Pending payments are left alone. Returns the number of records cleared
    per collection.
    """
    cleared: dict[str, int] = {}
    for collection in IDENTITY_COLLECTIONS:
        cleared[collection] = await storage.clear(collection)
    logger.warning(f"Identity data cleared: {cleared}")
    return cleared
