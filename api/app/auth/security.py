import hashlib
import hmac
import time

from app.config import SLACK_SIGNATURE_MAX_AGE_SECONDS

SIGNATURE_VERSION = "v0"


def compute_slack_signature(body: bytes, timestamp: str, signing_secret: str) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    signing_secret: str,
    *,
    now: float | None = None,
    max_age_seconds: int = SLACK_SIGNATURE_MAX_AGE_SECONDS,
) -> bool:
    """Check Slack's X-Slack-Signature header against the raw request body.

    Requests older than ``max_age_seconds`` are rejected to block replays.
    """
    if not signature or not timestamp or not signing_secret:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    current = int(now if now is not None else time.time())
    if ts < current - max_age_seconds:
        return False
    expected = compute_slack_signature(body, timestamp, signing_secret)
    return hmac.compare_digest(expected, signature)
