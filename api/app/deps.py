from typing import Iterator

from fastapi import Header, HTTPException

from .config import ADMIN_TOKEN, SLACK_BOT_TOKEN
from .repo import SqlHistoryStore
from .services.slack import SlackError, SlackGateway, get_gateway


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def require_admin_token(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    validate_admin_token(x_admin_token, ADMIN_TOKEN)


def get_store() -> SqlHistoryStore:
    return SqlHistoryStore()


def get_slack_gateway() -> Iterator[SlackGateway]:
    try:
        gateway = get_gateway()
    except SlackError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    try:
        yield gateway
    finally:
        gateway.close()


def get_slack_responder() -> Iterator[SlackGateway]:
    # Replies go to Slack's pre-signed response_url, so no bot token is required.
    gateway = SlackGateway(SLACK_BOT_TOKEN)
    try:
        yield gateway
    finally:
        gateway.close()
