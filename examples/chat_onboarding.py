"""
Example: Chat Onboarding and Approval

Plays a gateway: feeds chat messages into the identity service and prints
the replies it would send back.

Requires BEACON_ENCRYPTION_KEY, and NWCLI_BASEURL / NWCLI_MASTER_WALLET for
the generated-wallet path.
"""

import asyncio

from dotenv import load_dotenv
load_dotenv()

from beacon_id import Config, IdentityService, PendingPayment, PendingPaymentKind

USER = "15551234567"


def chat(text: str) -> dict:
    return {"source": {"from": USER, "text": text, "gateway": {"type": "web"}}}


async def say(service: IdentityService, text: str) -> None:
    print(f"\n👤 {text}")
    await service.worker.submit(chat(text))
    for reply in service.outbound.drain():
        print(f"🤖 {reply['body']}")


async def main():
    print("=== Beacon Identity Chat Example ===")

    async with IdentityService(Config.from_env()) as service:
        # Step 1: Onboard with a generated wallet
        await say(service, "hello")
        await say(service, "2")
        await say(service, "No")

        npub = await service.resolve_user_npub(USER, gateway_type="web")
        if npub is None:
            print("⚠️  Onboarding did not finish")
            return
        print(f"\n✅ Onboarded as {npub}")

        balance = await service.get_balance(npub)
        if balance.success:
            print(f"✅ Balance: {balance.balance} sats")
        else:
            print(f"⚠️  Balance check failed: {balance.error}")

        # Step 2: Upstream asks to pay; nothing moves until the user says yes
        await service.request_approval(
            USER,
            PendingPayment(
                npub=npub,
                kind=PendingPaymentKind.LN_ADDRESS,
                ln_address="tips@example.com",
                amount=21,
                request_id="example-1",
            ),
        )
        print("\n💸 Upstream requested 21 sats to tips@example.com")
        await say(service, "yes")

    print("\n=== Example Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
