import json

import httpx
import pytest

from app.services.slack import SlackError, SlackGateway

API = "https://slack.test/api"


def _gateway(handler) -> SlackGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SlackGateway("xoxb-test", api_base=API, client=client)


def test_channel_members_follow_pagination_cursor():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(dict(request.url.params))
        assert request.headers["Authorization"] == "Bearer xoxb-test"
        if request.url.params.get("cursor") == "page2":
            return httpx.Response(200, json={"ok": True, "members": ["UC"], "response_metadata": {"next_cursor": ""}})
        return httpx.Response(200, json={"ok": True, "members": ["UA", "UB"], "response_metadata": {"next_cursor": "page2"}})

    assert _gateway(handler).get_channel_members("C1") == ["UA", "UB", "UC"]
    assert len(calls) == 2
    assert calls[0]["channel"] == "C1"


def test_channel_members_failure_raises():
    def handler(request):
        return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})

    with pytest.raises(SlackError):
        _gateway(handler).get_channel_members("C404")


def test_channel_members_http_error_raises():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    with pytest.raises(SlackError):
        _gateway(handler).get_channel_members("C1")


def test_user_info_reads_profile_and_bot_flag():
    def handler(request):
        uid = request.url.params["user"]
        if uid == "UBOT":
            return httpx.Response(200, json={"ok": True, "user": {"id": "UBOT", "is_bot": True, "name": "bot"}})
        if uid == "USLACKBOT":
            return httpx.Response(200, json={"ok": True, "user": {"id": "USLACKBOT", "is_bot": False}})
        if uid == "UGONE":
            return httpx.Response(200, json={"ok": False, "error": "user_not_found"})
        return httpx.Response(200, json={"ok": True, "user": {"id": uid, "profile": {"display_name": "", "real_name": "Ada L"}}})

    gw = _gateway(handler)
    human = gw.get_user_info("UA")
    assert human.display_name == "Ada L"
    assert not human.is_bot
    assert gw.get_user_info("UBOT").is_bot
    assert gw.get_user_info("USLACKBOT").is_bot
    assert gw.get_user_info("UGONE") is None


def test_open_group_conversation_returns_channel_id():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "channel": {"id": "G123"}})

    assert _gateway(handler).open_group_conversation(["UA", "UB", "UC"]) == "G123"
    assert seen["body"] == {"users": "UA,UB,UC"}


def test_open_group_conversation_failure_is_none():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    assert _gateway(handler).open_group_conversation(["UA", "UB"]) is None


def test_send_message_with_blocks():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "hi"}}]
    assert _gateway(handler).send_message("G123", "hi", blocks)
    assert seen["path"].endswith("/chat.postMessage")
    assert seen["body"] == {"channel": "G123", "text": "hi", "blocks": blocks}


def test_send_message_rejected_by_slack():
    def handler(request):
        return httpx.Response(200, json={"ok": False, "error": "not_in_channel"})

    assert _gateway(handler).send_message("G123", "hi") is False


def test_respond_posts_to_response_url_without_token():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text="ok")

    assert _gateway(handler).respond("https://hooks.slack.test/actions/T1/abc", "thanks")
    assert seen["url"] == "https://hooks.slack.test/actions/T1/abc"
    assert seen["auth"] is None
    assert seen["body"] == {"replace_original": True, "text": "thanks"}


def test_respond_can_keep_original_message():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text="ok")

    assert _gateway(handler).respond("https://hooks.slack.test/actions/T1/abc", "retry", replace_original=False)
    assert seen["body"] == {"replace_original": False, "text": "retry"}
