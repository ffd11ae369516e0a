import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.database import SessionLocal
from app.services.pairing import AvoidRelation, PriorPairings

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _valid_uuid(value: Any) -> str | None:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        return None


class SqlHistoryStore:
    """Users, rounds, matches, avoid-list and config in Postgres.

    Every method opens its own session and commits its own write, so a failure
    part-way through a round leaves earlier rows in place.
    """

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or SessionLocal

    # -- config -------------------------------------------------------------

    def get_config(self, key: str) -> Any:
        with self._session_factory() as db:
            row = db.execute(text("SELECT value FROM config WHERE key=:key"), {"key": key}).mappings().first()
        return row["value"] if row else None

    def list_config(self) -> dict[str, Any]:
        with self._session_factory() as db:
            rows = db.execute(text("SELECT key, value FROM config ORDER BY key")).mappings().all()
        return {str(r["key"]): r["value"] for r in rows}

    def set_config(self, key: str, value: Any) -> None:
        with self._session_factory() as db:
            db.execute(
                text(
                    """
                    INSERT INTO config (key, value)
                    VALUES (:key, CAST(:value AS jsonb))
                    ON CONFLICT (key) DO UPDATE SET value=EXCLUDED.value
                    """
                ),
                {"key": key, "value": json.dumps(value)},
            )
            db.commit()

    # -- users --------------------------------------------------------------

    def get_active_users(self) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT slack_user_id, display_name, is_active, created_at, updated_at
                    FROM users
                    WHERE is_active = TRUE
                    ORDER BY slack_user_id
                    """
                )
            ).mappings().all()
        return [dict(r) for r in rows]

    def sync_channel_members(self, members: list[dict[str, str]]) -> dict[str, int]:
        """Mark current channel humans active and everyone else inactive."""
        upserted = 0
        failed = 0
        keep_ids = [str(m["id"]) for m in members]
        with self._session_factory() as db:
            for member in members:
                try:
                    db.execute(
                        text(
                            """
                            INSERT INTO users (slack_user_id, display_name, is_active)
                            VALUES (:id, :display_name, TRUE)
                            ON CONFLICT (slack_user_id)
                            DO UPDATE SET display_name=EXCLUDED.display_name, is_active=TRUE, updated_at=NOW()
                            """
                        ),
                        {"id": str(member["id"]), "display_name": str(member.get("display_name") or "")},
                    )
                    db.commit()
                    upserted += 1
                except SQLAlchemyError as exc:
                    db.rollback()
                    failed += 1
                    logger.error("[STORE] user upsert failed slack_user_id=%s err=%s", member.get("id"), exc)

            res = db.execute(
                text(
                    """
                    UPDATE users
                    SET is_active=FALSE, updated_at=NOW()
                    WHERE is_active = TRUE
                      AND NOT (slack_user_id = ANY(:keep_ids))
                    """
                ),
                {"keep_ids": keep_ids},
            )
            db.commit()
        return {"upserted": upserted, "failed": failed, "deactivated": int(res.rowcount or 0)}

    # -- rounds -------------------------------------------------------------

    def get_most_recent_round(self) -> dict[str, Any] | None:
        with self._session_factory() as db:
            row = db.execute(
                text(
                    """
                    SELECT id, round_date, status, created_at
                    FROM rounds
                    ORDER BY round_date DESC, created_at DESC
                    LIMIT 1
                    """
                )
            ).mappings().first()
        return dict(row) if row else None

    def create_round(self, round_date: date) -> dict[str, Any] | None:
        """Insert the round for ``round_date``; None when that date already has one."""
        round_id = str(uuid.uuid4())
        try:
            with self._session_factory() as db:
                row = db.execute(
                    text(
                        """
                        INSERT INTO rounds (id, round_date, status)
                        VALUES (CAST(:id AS uuid), :round_date, 'active')
                        RETURNING id, round_date, status, created_at
                        """
                    ),
                    {"id": round_id, "round_date": round_date},
                ).mappings().first()
                db.commit()
        except IntegrityError:
            logger.info("[STORE] round already exists for round_date=%s", round_date)
            return None
        return dict(row) if row else None

    # -- avoid list ---------------------------------------------------------

    def list_avoid_entries(self) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text("SELECT user_id, avoid_user_id, created_at FROM user_avoid_list ORDER BY user_id, avoid_user_id")
            ).mappings().all()
        return [dict(r) for r in rows]

    def get_avoid_relation(self) -> AvoidRelation:
        return AvoidRelation((str(r["user_id"]), str(r["avoid_user_id"])) for r in self.list_avoid_entries())

    def add_avoid_pair(self, user_id: str, avoid_user_id: str) -> bool:
        if str(user_id) == str(avoid_user_id):
            return False
        try:
            with self._session_factory() as db:
                for a, b in [(user_id, avoid_user_id), (avoid_user_id, user_id)]:
                    db.execute(
                        text(
                            """
                            INSERT INTO user_avoid_list (user_id, avoid_user_id)
                            VALUES (:user_id, :avoid_user_id)
                            ON CONFLICT (user_id, avoid_user_id) DO NOTHING
                            """
                        ),
                        {"user_id": str(a), "avoid_user_id": str(b)},
                    )
                db.commit()
        except IntegrityError:
            return False
        return True

    def remove_avoid_pair(self, user_id: str, avoid_user_id: str) -> int:
        with self._session_factory() as db:
            res = db.execute(
                text(
                    """
                    DELETE FROM user_avoid_list
                    WHERE (user_id=:a AND avoid_user_id=:b)
                       OR (user_id=:b AND avoid_user_id=:a)
                    """
                ),
                {"a": str(user_id), "b": str(avoid_user_id)},
            )
            db.commit()
        return int(res.rowcount or 0)

    # -- matches ------------------------------------------------------------

    def get_prior_pairings(self) -> PriorPairings:
        """Latest pairing time per user pair plus each user's latest group, aggregated in SQL."""
        with self._session_factory() as db:
            pair_rows = db.execute(
                text(
                    """
                    SELECT a.uid AS user_a, b.uid AS user_b, MAX(m.matched_at) AS last_paired_at
                    FROM matches m
                    CROSS JOIN LATERAL unnest(m.participant_ids) AS a(uid)
                    CROSS JOIN LATERAL unnest(m.participant_ids) AS b(uid)
                    WHERE a.uid < b.uid
                    GROUP BY a.uid, b.uid
                    """
                )
            ).mappings().all()
            latest_rows = db.execute(
                text(
                    """
                    SELECT DISTINCT ON (p.uid) p.uid AS user_id, m.participant_ids
                    FROM matches m
                    CROSS JOIN LATERAL unnest(m.participant_ids) AS p(uid)
                    ORDER BY p.uid, m.matched_at DESC
                    """
                )
            ).mappings().all()
        return PriorPairings(
            last_paired_at={
                frozenset((str(r["user_a"]), str(r["user_b"]))): r["last_paired_at"] for r in pair_rows
            },
            recent_partners={
                str(r["user_id"]): {str(p) for p in r["participant_ids"] or []} - {str(r["user_id"])}
                for r in latest_rows
            },
        )

    def create_match(self, round_id: str, participant_ids: list[str]) -> str:
        match_id = str(uuid.uuid4())
        with self._session_factory() as db:
            db.execute(
                text(
                    """
                    INSERT INTO matches (id, round_id, participant_ids, met_status)
                    VALUES (CAST(:id AS uuid), CAST(:round_id AS uuid), :participant_ids, 'pending')
                    """
                ),
                {"id": match_id, "round_id": str(round_id), "participant_ids": [str(p) for p in participant_ids]},
            )
            db.commit()
        return match_id

    def set_match_conversation(self, match_id: str, handle: str) -> bool:
        with self._session_factory() as db:
            res = db.execute(
                text("UPDATE matches SET slack_channel_id=:handle, updated_at=NOW() WHERE id=CAST(:id AS uuid)"),
                {"id": str(match_id), "handle": handle},
            )
            db.commit()
        return bool(res.rowcount)

    def get_match(self, match_id: str) -> dict[str, Any] | None:
        parsed = _valid_uuid(match_id)
        if not parsed:
            return None
        with self._session_factory() as db:
            row = db.execute(
                text(
                    """
                    SELECT id, round_id, slack_channel_id, participant_ids, matched_at, met_status, created_at, updated_at
                    FROM matches
                    WHERE id=CAST(:id AS uuid)
                    """
                ),
                {"id": parsed},
            ).mappings().first()
        return dict(row) if row else None

    def set_match_status(self, match_id: str, status: str, now: datetime | None = None) -> bool:
        parsed = _valid_uuid(match_id)
        if not parsed:
            return False
        with self._session_factory() as db:
            res = db.execute(
                text("UPDATE matches SET met_status=:status, updated_at=:now WHERE id=CAST(:id AS uuid)"),
                {"id": parsed, "status": status, "now": now or _now_utc()},
            )
            db.commit()
        return bool(res.rowcount)

    def get_matches_for_round(self, round_id: str) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT id, round_id, slack_channel_id, participant_ids, met_status, created_at, updated_at
                    FROM matches
                    WHERE round_id=CAST(:round_id AS uuid)
                    ORDER BY created_at
                    """
                ),
                {"round_id": str(round_id)},
            ).mappings().all()
        return [dict(r) for r in rows]

    def get_pending_matches_for_round(self, round_id: str) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            rows = db.execute(
                text(
                    """
                    SELECT id, slack_channel_id
                    FROM matches
                    WHERE round_id=CAST(:round_id AS uuid)
                      AND met_status='pending'
                      AND slack_channel_id IS NOT NULL
                    ORDER BY created_at
                    """
                ),
                {"round_id": str(round_id)},
            ).mappings().all()
        return [dict(r) for r in rows]
