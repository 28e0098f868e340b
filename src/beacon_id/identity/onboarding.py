"""
Onboarding state machine.

Walks an unknown chat user to a usable wallet:

    (none) -> awaiting_choice -> awaiting_nwc -> awaiting_ln_address -> done
                              \\-> (generate wallet) -/

State lives in process memory keyed by gateway user and is lost on restart;
the user then starts over.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from beacon_id.core.exceptions import OnboardingError
from beacon_id.core.logging import get_logger
from beacon_id.core.types import InboundMessage, OnboardingState, OnboardingStep
from beacon_id.identity import messages
from beacon_id.wallet.nostr import generate_identity
from beacon_id.wallet.nwc import looks_like_connect_uri

if TYPE_CHECKING:
    from beacon_id.identity.replies import ReplySender
    from beacon_id.identity.store import GatewayMap, WalletStore
    from beacon_id.notify.notifier import Notifier
    from beacon_id.wallet.http_wallet import NwcliClient
    from beacon_id.wallet.service import WalletService

MAX_LABEL_LENGTH = 32

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)

CHOICE_NWC = "1"
CHOICE_GENERATE = "2"


def parse_wallet_choice(text: str) -> str | None:
    """Map a free-text reply to the welcome prompt onto "1", "2" or None."""
    normalized = text.strip().lower()
    if not normalized:
        return None
    if (
        normalized == "1"
        or normalized.startswith("1)")
        or "wallet connect" in normalized
        or "nwc" in normalized
    ):
        return CHOICE_NWC
    if (
        normalized == "2"
        or normalized.startswith("2)")
        or "generate" in normalized
        or "new wallet" in normalized
    ):
        return CHOICE_GENERATE
    return None


def generate_sub_account_label(gateway_type: str, gateway_user: str, npub: str) -> str:
    """
    Deterministic sub-account label: ``beacon-<type>-<suffix>``.

    The suffix is the last six alphanumerics of the gateway user, or of the
    npub when the user handle has none.
    """
    sanitized = _NON_ALNUM_RE.sub("", gateway_user).lower()
    suffix = (sanitized[-6:] or npub[-6:]).lower()
    return f"beacon-{gateway_type}-{suffix}"[:MAX_LABEL_LENGTH]


class OnboardingFlow:
    """Per-user onboarding conversations."""

    def __init__(
        self,
        store: WalletStore,
        gateway_map: GatewayMap,
        wallets: WalletService,
        nwcli: NwcliClient,
        notifier: Notifier,
        replies: ReplySender,
        gateway_npub: str = "",
    ) -> None:
        self._store = store
        self._gateway_map = gateway_map
        self._wallets = wallets
        self._nwcli = nwcli
        self._notifier = notifier
        self._replies = replies
        self._gateway_npub = gateway_npub
        self._states: dict[str, OnboardingState] = {}
        self._logger = get_logger("onboarding")

    def has_state(self, gateway_user: str) -> bool:
        return gateway_user in self._states

    def state_for(self, gateway_user: str) -> OnboardingState | None:
        return self._states.get(gateway_user)

    async def handle(self, msg: InboundMessage) -> None:
        """Advance the sender's onboarding by one message. Never raises for flow errors."""
        gateway_user = msg.sender
        context = await self._replies.context_for(msg)
        text = msg.text.strip()

        try:
            state = self._states.get(gateway_user)

            if state is None:
                await self._start(msg, context)
                return

            if state.step == OnboardingStep.AWAITING_CHOICE:
                await self._on_choice(msg, state, text, context)
            elif state.step == OnboardingStep.AWAITING_NWC:
                await self._on_nwc(msg, state, text, context)
            elif state.step == OnboardingStep.AWAITING_LN_ADDRESS:
                await self._on_ln_address(msg, state, text, context)
        except Exception as e:
            self._logger.error(f"Critical error during onboarding of {gateway_user}: {e}", exc_info=True)
            self._states.pop(gateway_user, None)
            await self._replies.send(msg, messages.ONBOARDING_CRITICAL_ERROR, context)

    # ==================== Transitions ====================

    async def _start(self, msg: InboundMessage, context: dict[str, Any]) -> None:
        self._logger.info(f"Starting onboarding for {msg.sender}")
        npub = await self._create_user(msg)
        if npub is None:
            await self._replies.send(msg, messages.ACCOUNT_CREATION_FAILED, context)
            return
        self._states[msg.sender] = OnboardingState(OnboardingStep.AWAITING_CHOICE, npub)
        await self._replies.send(msg, messages.WELCOME_PROMPT, context)
        self._logger.info(f"Onboarding step 0: awaiting wallet preference for {msg.sender}")

    async def _on_choice(
        self,
        msg: InboundMessage,
        state: OnboardingState,
        text: str,
        context: dict[str, Any],
    ) -> None:
        if looks_like_connect_uri(text):
            await self._on_connect_uri(msg, state, text, context)
            return

        choice = parse_wallet_choice(text)
        if choice == CHOICE_NWC:
            self._states[msg.sender] = OnboardingState(OnboardingStep.AWAITING_NWC, state.npub)
            await self._replies.send(msg, messages.NWC_PROMPT, context)
            self._logger.info(f"Onboarding step 1: awaiting NWC for {msg.sender}")
        elif choice == CHOICE_GENERATE:
            await self._generate_wallet(msg, state, context)
        else:
            await self._replies.send(msg, messages.WELCOME_PROMPT, context)

    async def _on_nwc(
        self,
        msg: InboundMessage,
        state: OnboardingState,
        text: str,
        context: dict[str, Any],
    ) -> None:
        if looks_like_connect_uri(text):
            await self._on_connect_uri(msg, state, text, context)
        elif parse_wallet_choice(text) == CHOICE_GENERATE:
            await self._generate_wallet(msg, state, context)
        else:
            await self._replies.send(msg, messages.STILL_WAITING_FOR_NWC, context)

    async def _on_ln_address(
        self,
        msg: InboundMessage,
        state: OnboardingState,
        text: str,
        context: dict[str, Any],
    ) -> None:
        ln_address = None if text.lower() == "no" else text
        await self._store.update_ln_address(state.npub, ln_address)
        await self._finish(msg, state, context)

    async def _on_connect_uri(
        self,
        msg: InboundMessage,
        state: OnboardingState,
        uri: str,
        context: dict[str, Any],
    ) -> None:
        if not await self._wallets.validate_connect_uri(uri):
            self._logger.info(f"Invalid NWC string received from {msg.sender}")
            await self._replies.send(msg, messages.INVALID_NWC, context)
            return

        await self._store.save_nwc_wallet(state.npub, uri)
        self._await_ln_address(msg.sender, state)
        await self._replies.send(msg, messages.LN_ADDRESS_PROMPT, context)

    async def _generate_wallet(
        self,
        msg: InboundMessage,
        state: OnboardingState,
        context: dict[str, Any],
    ) -> None:
        gateway_type = msg.gateway.type
        label = generate_sub_account_label(gateway_type, msg.sender, state.npub)
        try:
            self._logger.info(f"Creating API wallet for {msg.sender} with label {label}")
            response = await self._nwcli.create_sub_account(
                label=label,
                description=f"Beacon sub-account for {gateway_type}:{msg.sender}",
                metadata={
                    "gatewayType": gateway_type,
                    "gatewayUser": msg.sender,
                    "npub": state.npub,
                },
            )
            identifier, subaccount_id, stored_label = self._parse_sub_account(response, label)
            await self._store.save_api_wallet(state.npub, identifier, subaccount_id, stored_label)
        except Exception as e:
            self._logger.error(f"Failed to generate API wallet for {msg.sender}: {e}", exc_info=True)
            self._states[msg.sender] = OnboardingState(OnboardingStep.AWAITING_CHOICE, state.npub)
            await self._replies.send(msg, messages.WALLET_GENERATION_FAILED, context)
            await self._replies.send(msg, messages.WELCOME_PROMPT, context)
            return

        self._await_ln_address(msg.sender, state)
        await self._replies.send(msg, messages.LN_ADDRESS_PROMPT, context)

    async def _finish(self, msg: InboundMessage, state: OnboardingState, context: dict[str, Any]) -> None:
        self._states.pop(msg.sender, None)
        try:
            await self._notifier.notify_new_user(msg.gateway.type, msg.sender, state.npub)
        except Exception as e:
            self._logger.warning(f"New-user notification failed for {msg.sender} (non-fatal): {e}")
        await self._replies.send(msg, messages.ONBOARDING_COMPLETE, context)
        self._logger.info(f"Onboarding complete for {msg.sender}")

    # ==================== Helpers ====================

    def _await_ln_address(self, gateway_user: str, state: OnboardingState) -> None:
        self._states[gateway_user] = OnboardingState(OnboardingStep.AWAITING_LN_ADDRESS, state.npub)
        self._logger.info(f"Onboarding step 2: awaiting LN Address for {gateway_user}")

    async def _create_user(self, msg: InboundMessage) -> str | None:
        """Allocate a fresh npub and map the gateway user to it."""
        try:
            _, npub = generate_identity()
            await self._gateway_map.upsert(
                msg.gateway.type,
                self._gateway_npub,
                msg.sender,
                npub,
                gateway_bot_id=msg.bot_id,
            )
        except Exception as e:
            self._logger.error(f"Failed to create user for {msg.sender}: {e}", exc_info=True)
            return None
        self._logger.info(f"Created new user mapping for {msg.sender} -> {npub}")
        return npub

    @staticmethod
    def _parse_sub_account(response: Any, fallback_label: str) -> tuple[str, str | None, str]:
        if not isinstance(response, dict) or not response.get("identifier"):
            raise OnboardingError("Sub-account response has no identifier.", details={"response": response})
        sub_account = response.get("subAccount") or {}
        label = sub_account.get("label") if isinstance(sub_account, dict) else None
        subaccount_id = response.get("id")
        return (
            str(response["identifier"]),
            str(subaccount_id) if subaccount_id is not None else None,
            str(label or fallback_label),
        )
