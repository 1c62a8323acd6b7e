from __future__ import annotations

import hmac

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def verify_secret_token(expected_token: str, received_token: str | None) -> bool:
    expected = (expected_token or "").strip()
    received = (received_token or "").strip()
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
