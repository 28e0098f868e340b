"""Tests for PendingPaymentStore."""

import asyncio

import pytest

from beacon_id.core.exceptions import ValidationError
from beacon_id.core.types import PendingPayment, PendingPaymentKind
from beacon_id.payment.pending import PendingPaymentStore


def payment(request_id: str = "req-1") -> PendingPayment:
    return PendingPayment(
        npub="npub1a", kind=PendingPaymentKind.LN_INVOICE, ln_invoice="lnbc1pexample", request_id=request_id
    )


class TestPendingPaymentStore:
    """Tests for the approval buffer."""

    @pytest.mark.asyncio
    async def test_put_records_gateway_user(self, storage) -> None:
        store = PendingPaymentStore(storage)

        await store.put("15551234567", payment())

        stored = await store.peek("15551234567")
        assert stored.gateway_user == "15551234567"
        assert stored.request_id == "req-1"

    @pytest.mark.asyncio
    async def test_put_replaces_previous(self, storage) -> None:
        store = PendingPaymentStore(storage)

        await store.put("u1", payment("req-1"))
        await store.put("u1", payment("req-2"))

        assert (await store.retrieve_and_clear("u1")).request_id == "req-2"

    @pytest.mark.asyncio
    async def test_retrieve_is_read_once(self, storage) -> None:
        store = PendingPaymentStore(storage)
        await store.put("u1", payment())

        first = await store.retrieve_and_clear("u1")
        second = await store.retrieve_and_clear("u1")

        assert first is not None
        assert second is None
        assert await store.peek("u1") is None

    @pytest.mark.asyncio
    async def test_concurrent_retrieval_single_winner(self, storage) -> None:
        store = PendingPaymentStore(storage)
        await store.put("u1", payment())

        results = await asyncio.gather(*(store.retrieve_and_clear("u1") for _ in range(5)))

        assert sum(r is not None for r in results) == 1

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, storage) -> None:
        store = PendingPaymentStore(storage)
        await store.put("u1", payment("req-1"))
        await store.put("u2", payment("req-2"))

        assert await store.clear("u1") is True
        assert await store.clear("u1") is False
        assert (await store.peek("u2")).request_id == "req-2"

    @pytest.mark.asyncio
    async def test_unreadable_record_is_removed_and_reported(self, storage) -> None:
        store = PendingPaymentStore(storage)
        record = {"npub": "npub1a", "type": "on_chain", "request_id": "req-9"}
        await storage.save(PendingPaymentStore.COLLECTION, "u1", record)

        with pytest.raises(ValidationError) as exc_info:
            await store.retrieve_and_clear("u1")

        assert exc_info.value.details["record"] == record
        assert await store.retrieve_and_clear("u1") is None
