"""User-facing chat texts."""

WELCOME_PROMPT = "\n".join(
    [
        "Welcome to Beacon!",
        "",
        "I am the Beacon ID. I help you manage your wallet and approvals. "
        "The Beacon Brain will answer your questions and help you work with your money "
        "and get access to any information you need.",
        "",
        "Would you like to:",
        "(1) BYO Wallet w. Nostr Wallet Connect",
        "(2) Generate a new wallet?",
    ]
)

NWC_PROMPT = (
    "Alright, let's set up your Bitcoin wallet. "
    "Please respond with a nostr wallet connect string and I'll do the rest."
)

LN_ADDRESS_PROMPT = (
    "That all worked, please can you tell me your lightning address for this wallet? "
    "Or if it's not available just say No"
)

INVALID_NWC = (
    "Hey that didn't work, please ensure it's a valid wallet connect string "
    "or reply 2 to generate a new wallet."
)

STILL_WAITING_FOR_NWC = (
    "I'm still waiting on a valid wallet connect string. "
    "You can also reply 2 to generate a new wallet."
)

WALLET_GENERATION_FAILED = "Sorry, I couldn't create a wallet right now. Let's try that again."

ACCOUNT_CREATION_FAILED = "Sorry, there was an error creating your account. Please try again later."

ONBOARDING_CRITICAL_ERROR = "Sorry, a critical error occurred during onboarding. Please start over."

ONBOARDING_COMPLETE = "\n".join(
    [
        "We've successfully created you a Lightning wallet and onboarded you to Bitcoin.",
        "",
        "The Beacon Brain will be in touch from another number. You can use the Brain "
        "to get access to any information and to ask for payments, invoices, etc from your wallet.",
        "",
        "No money can be spent by the Brain unless you approve it here first.",
        "",
        "We hope you have a great day!",
    ]
)

# Approval
PAYMENT_CONFIRMED = "Payment confirmed!"
PAYMENT_RECEIPT = " Your receipt is: {receipt}"
PAYMENT_NEW_BALANCE = " Your new balance is {balance} sats."
PAYMENT_FAILED = "Payment failed: {error}"

SUMMARY_PAID = "Successful payment."
SUMMARY_PAID_WITH_RECEIPT = "Successful payment. Receipt: {receipt}"
SUMMARY_REJECTED_DEFAULT = "Payment failed"
PENDING_UNREADABLE = "The payment request could not be read."
