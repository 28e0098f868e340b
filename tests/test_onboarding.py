"""Tests for the onboarding conversation."""

import pytest

from beacon_id.core.types import OnboardingStep, WalletKind
from beacon_id.identity import messages
from beacon_id.identity.onboarding import generate_sub_account_label, parse_wallet_choice
from conftest import GATEWAY_NPUB, USER


class TestHelpers:
    @pytest.mark.parametrize(
        ("text", "choice"),
        [
            ("1", "1"),
            (" 1) please", "1"),
            ("Nostr Wallet Connect", "1"),
            ("my NWC", "1"),
            ("2", "2"),
            ("2) new", "2"),
            ("Generate one", "2"),
            ("a new wallet please", "2"),
            ("", None),
            ("maybe", None),
        ],
    )
    def test_parse_wallet_choice(self, text: str, choice: str | None) -> None:
        assert parse_wallet_choice(text) == choice

    def test_label_uses_last_six_alphanumerics(self) -> None:
        assert generate_sub_account_label("whatsapp", "+1 (555) 123-4567", "npub1xyz") == "beacon-whatsapp-234567"

    def test_label_falls_back_to_npub(self) -> None:
        assert generate_sub_account_label("web", "---", "npub1abcdef") == "beacon-web-abcdef"

    def test_label_is_truncated(self) -> None:
        label = generate_sub_account_label("averyveryverylonggatewayname", "user12", "npub1")
        assert len(label) == 32


class TestStart:
    """First contact from an unknown user."""

    @pytest.mark.asyncio
    async def test_unknown_user_gets_welcome(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hello", bot_id="bot-7"))

        sent = harness.sent()
        assert [m["body"] for m in sent] == [messages.WELCOME_PROMPT]
        assert sent[0]["to"] == USER
        assert sent[0]["meta"]["ctx"] == {"networkID": "whatsapp", "userId": USER, "botid": "bot-7"}

        state = harness.onboarding.state_for(USER)
        assert state.step == OnboardingStep.AWAITING_CHOICE
        assert state.npub.startswith("npub1")
        links = await harness.gateway_map.resolve_user_links("whatsapp", GATEWAY_NPUB, USER)
        assert links.user_npub == state.npub
        assert links.gateway_bot_id == "bot-7"

    @pytest.mark.asyncio
    async def test_stored_bot_id_fills_reply_context(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hello", bot_id="bot-7"))
        harness.sent()

        await harness.onboarding.handle(harness.message("what?"))

        sent = harness.sent()
        assert sent[0]["body"] == messages.WELCOME_PROMPT
        assert sent[0]["meta"]["ctx"]["botid"] == "bot-7"

    @pytest.mark.asyncio
    async def test_account_creation_failure(self, harness, monkeypatch) -> None:
        async def broken(*args, **kwargs):
            raise RuntimeError("storage down")

        monkeypatch.setattr(harness.gateway_map, "upsert", broken)

        await harness.onboarding.handle(harness.message("hello"))

        assert harness.bodies() == [messages.ACCOUNT_CREATION_FAILED]
        assert not harness.onboarding.has_state(USER)


class TestNwcPath:
    """Bring-your-own wallet over Nostr Wallet Connect."""

    @pytest.mark.asyncio
    async def test_choice_one_asks_for_uri(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hi"))
        await harness.onboarding.handle(harness.message("1"))

        assert harness.bodies()[-1] == messages.NWC_PROMPT
        assert harness.onboarding.state_for(USER).step == OnboardingStep.AWAITING_NWC

    @pytest.mark.asyncio
    async def test_valid_uri_is_saved_encrypted(self, harness) -> None:
        uri = harness.fake_wallet.connect_uri()
        await harness.onboarding.handle(harness.message("hi"))
        npub = harness.onboarding.state_for(USER).npub
        await harness.onboarding.handle(harness.message("1"))

        await harness.onboarding.handle(harness.message(uri))

        assert harness.bodies()[-1] == messages.LN_ADDRESS_PROMPT
        assert harness.onboarding.state_for(USER).step == OnboardingStep.AWAITING_LN_ADDRESS
        row = await harness.wallet_store.get_row(npub)
        assert row["wallet_type"] == WalletKind.NWC.value
        assert uri not in str(row)
        assert harness.fake_wallet.methods() == ["get_balance"]

    @pytest.mark.asyncio
    async def test_uri_accepted_straight_from_welcome(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hi"))

        await harness.onboarding.handle(harness.message(harness.fake_wallet.connect_uri()))

        assert harness.bodies()[-1] == messages.LN_ADDRESS_PROMPT

    @pytest.mark.asyncio
    async def test_invalid_uri_keeps_waiting(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hi"))
        npub = harness.onboarding.state_for(USER).npub
        await harness.onboarding.handle(harness.message("1"))

        await harness.onboarding.handle(harness.message("nostr+walletconnect://garbage"))

        assert harness.bodies()[-1] == messages.INVALID_NWC
        assert harness.onboarding.state_for(USER).step == OnboardingStep.AWAITING_NWC
        assert await harness.wallet_store.get_row(npub) is None

    @pytest.mark.asyncio
    async def test_other_text_while_waiting(self, harness) -> None:
        await harness.onboarding.handle(harness.message("hi"))
        await harness.onboarding.handle(harness.message("1"))

        await harness.onboarding.handle(harness.message("hmm"))

        assert harness.bodies()[-1] == messages.STILL_WAITING_FOR_NWC


class TestGeneratedWallet:
    """Wallet generation on the nwcli service."""

    @pytest.mark.asyncio
    async def test_generate_then_skip_address(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (
            201,
            {"id": "sa-9", "identifier": "beacon-whatsapp-234567", "subAccount": {"label": "beacon-whatsapp-234567"}},
        )
        await harness.onboarding.handle(harness.message("hi"))
        npub = harness.onboarding.state_for(USER).npub

        await harness.onboarding.handle(harness.message("2"))

        assert harness.bodies()[-1] == messages.LN_ADDRESS_PROMPT
        assert harness.onboarding.state_for(USER).step == OnboardingStep.AWAITING_LN_ADDRESS
        row = await harness.wallet_store.get_row(npub)
        assert row["wallet_type"] == WalletKind.API.value
        assert row["api_identifier"] == "beacon-whatsapp-234567"
        assert row["api_subaccount_id"] == "sa-9"
        assert harness.nwcli_requests[0].url.path == "/api/wallets/master/subaccounts"

        await harness.onboarding.handle(harness.message("No"))

        assert harness.bodies() == [messages.ONBOARDING_COMPLETE]
        assert not harness.onboarding.has_state(USER)
        assert (await harness.wallet_store.get_row(npub))["ln_address"] is None
        harness.notifier.notify_new_user.assert_awaited_once_with("whatsapp", USER, npub)

    @pytest.mark.asyncio
    async def test_address_is_stored(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (201, {"identifier": "beacon-whatsapp-234567"})
        await harness.onboarding.handle(harness.message("hi"))
        npub = harness.onboarding.state_for(USER).npub
        await harness.onboarding.handle(harness.message("2"))

        await harness.onboarding.handle(harness.message("me@example.com"))

        row = await harness.wallet_store.get_row(npub)
        assert row["ln_address"] == "me@example.com"
        assert row["api_label"] == "beacon-whatsapp-234567"

    @pytest.mark.asyncio
    async def test_generation_failure_returns_to_choice(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (500, {"error": "nwcli down"})
        await harness.onboarding.handle(harness.message("hi"))
        harness.sent()

        await harness.onboarding.handle(harness.message("2"))

        assert harness.bodies() == [messages.WALLET_GENERATION_FAILED, messages.WELCOME_PROMPT]
        assert harness.onboarding.state_for(USER).step == OnboardingStep.AWAITING_CHOICE

    @pytest.mark.asyncio
    async def test_response_without_identifier_fails(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (201, {"id": "sa-9"})
        await harness.onboarding.handle(harness.message("hi"))
        harness.sent()

        await harness.onboarding.handle(harness.message("2"))

        assert harness.bodies()[0] == messages.WALLET_GENERATION_FAILED

    @pytest.mark.asyncio
    async def test_generate_from_nwc_step(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (201, {"identifier": "beacon-whatsapp-234567"})
        await harness.onboarding.handle(harness.message("hi"))
        await harness.onboarding.handle(harness.message("1"))

        await harness.onboarding.handle(harness.message("2"))

        assert harness.bodies()[-1] == messages.LN_ADDRESS_PROMPT


class TestFinish:
    @pytest.mark.asyncio
    async def test_notification_failure_is_not_fatal(self, harness) -> None:
        harness.nwcli_routes["/api/wallets/"] = (201, {"identifier": "beacon-whatsapp-234567"})
        harness.notifier.notify_new_user.side_effect = RuntimeError("brain unreachable")
        await harness.onboarding.handle(harness.message("hi"))
        await harness.onboarding.handle(harness.message("2"))
        harness.sent()

        await harness.onboarding.handle(harness.message("no"))

        assert harness.bodies() == [messages.ONBOARDING_COMPLETE]
        assert not harness.onboarding.has_state(USER)

    @pytest.mark.asyncio
    async def test_critical_error_resets_state(self, harness, monkeypatch) -> None:
        harness.nwcli_routes["/api/wallets/"] = (201, {"identifier": "beacon-whatsapp-234567"})
        await harness.onboarding.handle(harness.message("hi"))
        await harness.onboarding.handle(harness.message("2"))
        harness.sent()

        async def broken(*args, **kwargs):
            raise RuntimeError("storage down")

        monkeypatch.setattr(harness.wallet_store, "update_ln_address", broken)

        await harness.onboarding.handle(harness.message("me@example.com"))

        assert harness.bodies() == [messages.ONBOARDING_CRITICAL_ERROR]
        assert not harness.onboarding.has_state(USER)
