"""Masked credential derivation.

Secrets (Twilio SID/token, GreenApi token, email provider API key) are stored
next to a display mask so that settings screens never need the secret itself.
"""


def mask_token(token: str | None) -> str:
    """Mask a provider token as "****" plus its last four characters.

    Missing tokens and tokens of four characters or fewer are fully masked.
    """
    if not token or len(token) <= 4:
        return "****"
    return "****" + token[-4:]


def mask_secret(secret: str | None) -> str:
    """Mask a secret with one star per hidden character, keeping the last four."""
    if not secret:
        return ""
    visible = min(4, len(secret))
    return "*" * (len(secret) - visible) + secret[len(secret) - visible:]
