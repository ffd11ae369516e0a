"""Webhook receiver for Slack interactivity (the "did you meet?" buttons)."""

import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from .. import config
from ..auth.security import verify_slack_signature
from ..deps import get_slack_responder, get_store
from ..services.copy_templates import (
    ACTION_DID_YOU_MEET_NO,
    ACTION_DID_YOU_MEET_YES,
    RESPONSE_NO,
    RESPONSE_RECORD_FAILED,
    RESPONSE_YES,
)
from ..services.state_machine import record_match_outcome

logger = logging.getLogger(__name__)

router = APIRouter()

MEET_ACTIONS = {ACTION_DID_YOU_MEET_YES, ACTION_DID_YOU_MEET_NO}


def _extract_payload(raw_body: bytes) -> dict[str, Any]:
    form = parse_qs(raw_body.decode("utf-8", errors="replace"))
    payload_str = (form.get("payload") or [""])[0]
    if not payload_str:
        raise HTTPException(status_code=400, detail="Missing payload")
    try:
        payload = json.loads(payload_str)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def _find_meet_action(payload: dict[str, Any]) -> dict[str, Any] | None:
    if payload.get("type") != "block_actions":
        return None
    for action in payload.get("actions") or []:
        if isinstance(action, dict) and action.get("action_id") in MEET_ACTIONS and action.get("value"):
            return action
    return None


@router.post("/slack/interactivity")
async def slack_interactivity(
    request: Request,
    store=Depends(get_store),
    responder=Depends(get_slack_responder),
) -> Response:
    signing_secret = config.SLACK_SIGNING_SECRET
    if not signing_secret:
        raise HTTPException(status_code=500, detail="SLACK_SIGNING_SECRET not configured")

    raw_body = await request.body()
    if not verify_slack_signature(
        raw_body,
        request.headers.get("x-slack-signature"),
        request.headers.get("x-slack-request-timestamp"),
        signing_secret,
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = _extract_payload(raw_body)
    action = _find_meet_action(payload)
    if not action:
        return Response(status_code=200)

    match_id = str(action["value"])
    met = action["action_id"] == ACTION_DID_YOU_MEET_YES
    reply = RESPONSE_YES if met else RESPONSE_NO
    saved = True
    try:
        await run_in_threadpool(record_match_outcome, store, match_id, met, datetime.now(timezone.utc))
    except SQLAlchemyError as exc:
        logger.error("[SLACK] failed to update match match_id=%s err=%s", match_id, exc)
        reply = RESPONSE_RECORD_FAILED
        saved = False

    response_url = payload.get("response_url")
    if response_url:
        # Keep the buttons on screen when the answer was not saved.
        await run_in_threadpool(responder.respond, str(response_url), reply, replace_original=saved)

    return Response(status_code=200)
