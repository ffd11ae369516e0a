from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..config import CONFIG_PAIRING_INTERVAL_DAYS, CONFIG_ROUND_CHANNEL_ID, DEFAULT_PAIRING_INTERVAL_DAYS
from .copy_templates import MATCH_INTRO, MEET_REMINDER_FALLBACK, build_did_you_meet_blocks, build_summary_text
from .metrics import round_summary
from .pairing import PairingInvariantError, check_groups, compute_matches
from .slack import SlackError

logger = logging.getLogger(__name__)

HTTP_STATUS_BY_OUTCOME = {
    "created": 200,
    "skipped": 200,
    "no_rounds": 200,
    "sent": 200,
    "posted": 200,
    "insufficient_participants": 400,
    "misconfigured": 500,
    "error": 502,
}


@dataclass
class RoundOutcome:
    status: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_OUTCOME.get(self.status, 500)

    @property
    def ok(self) -> bool:
        return self.http_status < 400

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message, **self.details}


def _error(reason: str, exc: Exception) -> RoundOutcome:
    logger.error("[ROUNDS] %s: %s", reason, exc)
    return RoundOutcome("error", reason.replace("_", " ").capitalize(), {"reason": reason, "error": str(exc)})


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_interval_days(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_PAIRING_INTERVAL_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PAIRING_INTERVAL_DAYS
    return days if days >= 1 else DEFAULT_PAIRING_INTERVAL_DAYS


def normalize_channel_id(value: Any) -> str | None:
    if value is None:
        return None
    # Older rows hold the id JSON-encoded twice, i.e. with literal quotes.
    channel_id = str(value).strip().strip('"').strip()
    return channel_id or None


def days_since(last_round_date: date | datetime, now: datetime) -> int:
    if isinstance(last_round_date, datetime):
        start = _as_utc(last_round_date)
    else:
        start = datetime.combine(last_round_date, time.min, tzinfo=timezone.utc)
    return math.floor((_as_utc(now) - start).total_seconds() / 86_400)


def resolve_humans(gateway, member_ids: list[str]) -> tuple[list[dict[str, str]], list[dict[str, str]]]:
    humans: list[dict[str, str]] = []
    skipped: list[dict[str, str]] = []
    for uid in member_ids:
        info = gateway.get_user_info(uid)
        if info is None:
            skipped.append({"id": uid, "reason": "users.info failed"})
        elif info.is_bot:
            skipped.append({"id": uid, "reason": "bot"})
        else:
            humans.append({"id": info.id, "display_name": info.display_name})
    return humans, skipped


def try_start_round(store, gateway, now: datetime, *, seed: int | None = None) -> RoundOutcome:
    """Create and announce a new round if the pairing interval has elapsed.

    Safe to call on any schedule: inside the interval it only reads. The date
    of ``now`` is the round's idempotency key, so a concurrent call that loses
    the insert comes back as skipped.
    """
    now = _as_utc(now)

    try:
        interval_days = parse_interval_days(store.get_config(CONFIG_PAIRING_INTERVAL_DAYS))
        last_round = store.get_most_recent_round()
    except SQLAlchemyError as exc:
        return _error("store_read_failed", exc)

    if last_round:
        days_since_last = days_since(last_round["round_date"], now)
        # One day of slack so a scheduler firing a little early still runs.
        if days_since_last < interval_days - 1:
            logger.info("[ROUNDS] skip days_since_last=%s interval_days=%s", days_since_last, interval_days)
            return RoundOutcome(
                "skipped",
                "Skipping, not yet time for next round",
                {"reason": "interval_not_elapsed", "days_since_last": days_since_last, "interval_days": interval_days},
            )

    try:
        channel_id = normalize_channel_id(store.get_config(CONFIG_ROUND_CHANNEL_ID))
    except SQLAlchemyError as exc:
        return _error("store_read_failed", exc)
    if not channel_id:
        logger.error("[ROUNDS] round_channel_id not configured")
        return RoundOutcome(
            "misconfigured",
            "round_channel_id not configured in config table",
            {"reason": "missing_round_channel_id"},
        )

    try:
        member_ids = gateway.get_channel_members(channel_id)
    except SlackError as exc:
        return _error("channel_members_failed", exc)

    humans, skipped = resolve_humans(gateway, member_ids)
    if len(humans) < 2:
        logger.warning("[ROUNDS] not enough humans channel_members=%s humans=%s", len(member_ids), len(humans))
        return RoundOutcome(
            "insufficient_participants",
            "Not enough humans to match",
            {"channel_members": len(member_ids), "humans": len(humans), "skipped": skipped},
        )

    try:
        users_sync = store.sync_channel_members(humans)
        active_ids = [str(u["slack_user_id"]) for u in store.get_active_users()]
        avoid = store.get_avoid_relation()
        history = store.get_prior_pairings()
    except SQLAlchemyError as exc:
        return _error("participant_resolution_failed", exc)

    result = compute_matches(active_ids, history, avoid, seed=seed)
    try:
        check_groups(result.groups, avoid)
    except PairingInvariantError as exc:
        return _error("pairing_invariant_violated", exc)

    try:
        round_row = store.create_round(now.date())
    except SQLAlchemyError as exc:
        return _error("round_create_failed", exc)
    if round_row is None:
        return RoundOutcome(
            "skipped",
            "Round already being created for this date",
            {"reason": "conflict", "round_date": str(now.date())},
        )

    round_id = str(round_row["id"])
    logger.info(
        "[ROUNDS] round created round_id=%s active=%s groups=%s unplaced=%s",
        round_id,
        len(active_ids),
        len(result.groups),
        result.unplaced_count,
    )

    matches_created = 0
    announced = 0
    group_failures: list[dict[str, Any]] = []

    for group in result.groups:
        participant_ids = list(group)
        try:
            match_id = store.create_match(round_id, participant_ids)
        except SQLAlchemyError as exc:
            logger.error("[ROUNDS] match insert failed participants=%s err=%s", participant_ids, exc)
            group_failures.append({"participant_ids": participant_ids, "reason": "match_insert_failed"})
            continue
        matches_created += 1

        handle = gateway.open_group_conversation(participant_ids)
        if not handle:
            logger.error("[ROUNDS] conversation open failed match_id=%s participants=%s", match_id, participant_ids)
            group_failures.append({"match_id": match_id, "participant_ids": participant_ids, "reason": "conversation_open_failed"})
            continue

        try:
            store.set_match_conversation(match_id, handle)
        except SQLAlchemyError as exc:
            # The group still gets its intro; only the reminder pass will miss it.
            logger.error("[ROUNDS] conversation save failed match_id=%s err=%s", match_id, exc)
            group_failures.append({"match_id": match_id, "participant_ids": participant_ids, "reason": "conversation_save_failed"})

        if gateway.send_message(handle, MATCH_INTRO):
            announced += 1
        else:
            logger.error("[ROUNDS] intro post failed match_id=%s channel=%s", match_id, handle)
            group_failures.append({"match_id": match_id, "participant_ids": participant_ids, "reason": "announcement_failed"})

    return RoundOutcome(
        "created",
        "Matches created" if result.groups else "No matches this round",
        {
            "round_id": round_id,
            "round_date": str(round_row.get("round_date") or now.date()),
            "groups_count": len(result.groups),
            "matches_created": matches_created,
            "announced": announced,
            "group_failures": group_failures,
            "unplaced": result.unplaced,
            "unplaced_count": result.unplaced_count,
            "channel_members": len(member_ids),
            "humans": len(humans),
            "skipped": skipped,
            "users_sync": users_sync,
        },
    )


def send_meet_reminders(store, gateway) -> RoundOutcome:
    try:
        latest = store.get_most_recent_round()
        if not latest:
            return RoundOutcome("no_rounds", "No rounds found")
        round_id = str(latest["id"])
        pending = store.get_pending_matches_for_round(round_id)
    except SQLAlchemyError as exc:
        return _error("store_read_failed", exc)

    sent = 0
    for match in pending:
        blocks = build_did_you_meet_blocks(str(match["id"]))
        if gateway.send_message(str(match["slack_channel_id"]), MEET_REMINDER_FALLBACK, blocks):
            sent += 1
        else:
            logger.warning("[ROUNDS] reminder post failed match_id=%s", match["id"])

    logger.info("[ROUNDS] reminders round_id=%s pending=%s sent=%s", round_id, len(pending), sent)
    return RoundOutcome(
        "sent",
        "Meet reminders sent",
        {"round_id": round_id, "pending_count": len(pending), "sent": sent},
    )


def post_round_summary(store, gateway) -> RoundOutcome:
    try:
        channel_id = normalize_channel_id(store.get_config(CONFIG_ROUND_CHANNEL_ID))
        if not channel_id:
            return RoundOutcome(
                "misconfigured",
                "round_channel_id not configured in config table",
                {"reason": "missing_round_channel_id"},
            )
        latest = store.get_most_recent_round()
        if not latest:
            return RoundOutcome("no_rounds", "No rounds found")
        summary = round_summary(store, str(latest["id"]))
    except SQLAlchemyError as exc:
        return _error("store_read_failed", exc)

    text = build_summary_text(latest["round_date"], summary)
    if not gateway.send_message(channel_id, text):
        return RoundOutcome("error", "Failed to post to Slack", {"reason": "summary_post_failed", **summary})

    return RoundOutcome("posted", "Weekly summary posted", summary)
