import logging
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

MET_PENDING = "pending"
MET_YES = "yes"
MET_NO = "no"
MET_STATUSES = {MET_PENDING, MET_YES, MET_NO}

SIGNAL_MET = "met"
SIGNAL_NOT_MET = "not_met"


def transition_met_status(current: str, signal: str) -> str:
    # yes/no are terminal, but repeated or contradicting events are accepted: last write wins.
    if current not in MET_STATUSES:
        raise ValueError(f"unknown met_status: {current!r}")
    if signal == SIGNAL_MET:
        return MET_YES
    if signal == SIGNAL_NOT_MET:
        return MET_NO
    raise ValueError(f"unknown signal: {signal!r}")


def signal_from_bool(met: bool) -> str:
    return SIGNAL_MET if met else SIGNAL_NOT_MET


def record_match_outcome(store, match_id: str, met: bool, now: datetime) -> dict[str, Any]:
    match = store.get_match(match_id)
    if not match:
        logger.warning("[OUTCOME] match not found match_id=%s", match_id)
        return {"status": "not_found", "match_id": match_id}

    current = str(match.get("met_status") or MET_PENDING)
    new_status = transition_met_status(current, signal_from_bool(met))
    if not store.set_match_status(match_id, new_status, now):
        return {"status": "not_found", "match_id": match_id}

    logger.info("[OUTCOME] match_id=%s from=%s to=%s", match_id, current, new_status)
    return {"status": "updated", "match_id": match_id, "from": current, "met_status": new_status}
