"""Slack Web API client used as the notification gateway.

Pure API interactions only; message copy lives in copy_templates.py. Every call
goes through one httpx client with a bounded timeout. Delivery calls report
failure as None/False so a caller can skip one group and carry on; member
listing raises SlackError because a partial roster must never be acted on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import SLACK_API_BASE, SLACK_BOT_TOKEN, SLACK_HTTP_TIMEOUT_SECONDS, SLACK_MEMBERS_PAGE_SIZE

logger = logging.getLogger(__name__)

SLACKBOT_USER_ID = "USLACKBOT"


class SlackError(RuntimeError):
    pass


@dataclass
class SlackUserInfo:
    id: str
    display_name: str
    is_bot: bool


class SlackGateway:
    def __init__(
        self,
        token: str,
        *,
        api_base: str = SLACK_API_BASE,
        timeout: float = SLACK_HTTP_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def __enter__(self) -> "SlackGateway":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def _call(self, http_method: str, api_method: str, **kwargs: Any) -> dict[str, Any] | None:
        url = f"{self._api_base}/{api_method}"
        try:
            res = self._client.request(http_method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.error("[SLACK] %s transport error: %s", api_method, exc)
            return None
        if res.status_code >= 400:
            logger.error("[SLACK] %s failed status=%s body=%s", api_method, res.status_code, res.text[:500])
            return None
        try:
            data = res.json()
        except ValueError:
            logger.error("[SLACK] %s returned non-JSON body", api_method)
            return None
        if not data.get("ok"):
            logger.error("[SLACK] %s error=%s", api_method, data.get("error"))
            return None
        return data

    def get_channel_members(self, channel_id: str) -> list[str]:
        members: list[str] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"channel": channel_id, "limit": SLACK_MEMBERS_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            data = self._call("GET", "conversations.members", params=params)
            if data is None:
                raise SlackError(f"conversations.members failed for channel {channel_id}")
            members.extend(str(m) for m in data.get("members") or [])
            cursor = ((data.get("response_metadata") or {}).get("next_cursor") or "").strip() or None
            if not cursor:
                return members

    def get_user_info(self, user_id: str) -> SlackUserInfo | None:
        data = self._call("GET", "users.info", params={"user": user_id})
        if data is None or not data.get("user"):
            return None
        user = data["user"]
        profile = user.get("profile") or {}
        display_name = profile.get("display_name") or profile.get("real_name") or user.get("name") or user_id
        uid = str(user.get("id") or user_id)
        return SlackUserInfo(
            id=uid,
            display_name=str(display_name),
            is_bot=user.get("is_bot") is True or uid == SLACKBOT_USER_ID,
        )

    def open_group_conversation(self, user_ids: list[str]) -> str | None:
        data = self._call("POST", "conversations.open", json={"users": ",".join(user_ids)})
        channel = (data or {}).get("channel") or {}
        return str(channel["id"]) if channel.get("id") else None

    def send_message(self, channel_id: str, text: str, blocks: list[dict[str, Any]] | None = None) -> bool:
        body: dict[str, Any] = {"channel": channel_id, "text": text}
        if blocks:
            body["blocks"] = blocks
        return self._call("POST", "chat.postMessage", json=body) is not None

    def respond(self, response_url: str, text: str, *, replace_original: bool = True) -> bool:
        # response_url is pre-signed by Slack; no bearer token and no {"ok": ...} envelope.
        try:
            res = self._client.post(response_url, json={"replace_original": replace_original, "text": text})
        except httpx.HTTPError as exc:
            logger.error("[SLACK] response_url post failed: %s", exc)
            return False
        if res.status_code >= 400:
            logger.error("[SLACK] response_url status=%s", res.status_code)
            return False
        return True


def get_gateway() -> SlackGateway:
    if not SLACK_BOT_TOKEN:
        raise SlackError("SLACK_BOT_TOKEN not configured")
    return SlackGateway(SLACK_BOT_TOKEN)
