import uuid
from datetime import date, datetime, timezone
from typing import Any

import pytest

from app.services.pairing import AvoidRelation, PriorPairings
from app.services.slack import SlackUserInfo


class FakeStore:
    def __init__(self, config: dict[str, Any] | None = None):
        self.config: dict[str, Any] = dict(config or {})
        self.users: dict[str, dict[str, Any]] = {}
        self.rounds: list[dict[str, Any]] = []
        self.matches: dict[str, dict[str, Any]] = {}
        self.avoid: set[tuple[str, str]] = set()
        self.fail_on: dict[str, Exception] = {}
        self.writes: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        exc = self.fail_on.get(name)
        if exc:
            raise exc

    def get_config(self, key):
        self._maybe_fail("get_config")
        return self.config.get(key)

    def list_config(self):
        return dict(self.config)

    def set_config(self, key, value):
        self.writes.append("set_config")
        self.config[key] = value

    def get_active_users(self):
        self._maybe_fail("get_active_users")
        return [dict(u) for uid, u in sorted(self.users.items()) if u["is_active"]]

    def sync_channel_members(self, members):
        self.writes.append("sync_channel_members")
        keep = set()
        for m in members:
            self.users[m["id"]] = {"slack_user_id": m["id"], "display_name": m.get("display_name", ""), "is_active": True}
            keep.add(m["id"])
        deactivated = 0
        for uid, u in self.users.items():
            if uid not in keep and u["is_active"]:
                u["is_active"] = False
                deactivated += 1
        return {"upserted": len(members), "failed": 0, "deactivated": deactivated}

    def get_most_recent_round(self):
        self._maybe_fail("get_most_recent_round")
        if not self.rounds:
            return None
        return sorted(self.rounds, key=lambda r: (r["round_date"], r["created_at"]))[-1]

    def add_round(self, round_date: date, created_at: datetime | None = None) -> dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "round_date": round_date,
            "status": "active",
            "created_at": created_at or datetime.combine(round_date, datetime.min.time(), tzinfo=timezone.utc),
        }
        self.rounds.append(row)
        return row

    def create_round(self, round_date):
        self._maybe_fail("create_round")
        self.writes.append("create_round")
        if any(r["round_date"] == round_date for r in self.rounds):
            return None
        return self.add_round(round_date, created_at=datetime.now(timezone.utc))

    def list_avoid_entries(self):
        return [{"user_id": a, "avoid_user_id": b} for a, b in sorted(self.avoid)]

    def get_avoid_relation(self):
        return AvoidRelation(self.avoid)

    def add_avoid_pair(self, user_id, avoid_user_id):
        if user_id == avoid_user_id:
            return False
        self.avoid.add((user_id, avoid_user_id))
        self.avoid.add((avoid_user_id, user_id))
        return True

    def remove_avoid_pair(self, user_id, avoid_user_id):
        before = len(self.avoid)
        self.avoid.discard((user_id, avoid_user_id))
        self.avoid.discard((avoid_user_id, user_id))
        return before - len(self.avoid)

    def get_prior_pairings(self):
        return PriorPairings.from_matches((m["participant_ids"], m["matched_at"]) for m in self.matches.values())

    def add_match(self, round_id, participant_ids, met_status="pending", slack_channel_id=None, matched_at=None):
        match_id = str(uuid.uuid4())
        self.matches[match_id] = {
            "id": match_id,
            "round_id": round_id,
            "participant_ids": list(participant_ids),
            "met_status": met_status,
            "slack_channel_id": slack_channel_id,
            "matched_at": matched_at or datetime.now(timezone.utc),
            "updated_at": None,
        }
        return match_id

    def create_match(self, round_id, participant_ids):
        self._maybe_fail("create_match")
        self.writes.append("create_match")
        return self.add_match(round_id, participant_ids)

    def set_match_conversation(self, match_id, handle):
        self._maybe_fail("set_match_conversation")
        self.matches[match_id]["slack_channel_id"] = handle
        return True

    def get_match(self, match_id):
        m = self.matches.get(match_id)
        return dict(m) if m else None

    def set_match_status(self, match_id, status, now=None):
        self._maybe_fail("set_match_status")
        if match_id not in self.matches:
            return False
        self.matches[match_id]["met_status"] = status
        self.matches[match_id]["updated_at"] = now
        return True

    def get_matches_for_round(self, round_id):
        return [dict(m) for m in self.matches.values() if m["round_id"] == round_id]

    def get_pending_matches_for_round(self, round_id):
        return [
            {"id": m["id"], "slack_channel_id": m["slack_channel_id"]}
            for m in self.matches.values()
            if m["round_id"] == round_id and m["met_status"] == "pending" and m["slack_channel_id"]
        ]


class FakeGateway:
    def __init__(self, members: list[str] | None = None, bots: set[str] | None = None):
        self.members = list(members or [])
        self.bots = set(bots or set())
        self.unknown: set[str] = set()
        self.fail_open_for: set[str] = set()
        self.fail_send_to: set[str] = set()
        self.opened: list[list[str]] = []
        self.sent: list[dict[str, Any]] = []
        self.responses: list[tuple[str, str]] = []
        self.replaced: list[bool] = []
        self.members_error: Exception | None = None

    def get_channel_members(self, channel_id):
        if self.members_error:
            raise self.members_error
        return list(self.members)

    def get_user_info(self, user_id):
        if user_id in self.unknown:
            return None
        return SlackUserInfo(id=user_id, display_name=f"name-{user_id}", is_bot=user_id in self.bots)

    def open_group_conversation(self, user_ids):
        self.opened.append(list(user_ids))
        if self.fail_open_for.intersection(user_ids):
            return None
        return "G" + "".join(sorted(user_ids))

    def send_message(self, channel_id, text, blocks=None):
        if channel_id in self.fail_send_to:
            return False
        self.sent.append({"channel": channel_id, "text": text, "blocks": blocks})
        return True

    def respond(self, response_url, text, *, replace_original=True):
        self.responses.append((response_url, text))
        self.replaced.append(replace_original)
        return True

    def close(self):
        return None


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(config={"round_channel_id": "C0ROUNDS", "pairing_interval_days": 7})


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(members=["UA", "UB", "UC", "UD", "UE"])
