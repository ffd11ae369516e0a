from __future__ import annotations

from typing import Any, Iterable

from .state_machine import MET_NO, MET_YES


def summarize_statuses(statuses: Iterable[str]) -> dict[str, int]:
    counts = {"met": 0, "not_met": 0, "pending": 0, "total": 0}
    for status in statuses:
        counts["total"] += 1
        if status == MET_YES:
            counts["met"] += 1
        elif status == MET_NO:
            counts["not_met"] += 1
        else:
            counts["pending"] += 1
    return counts


def round_summary(store, round_id: str) -> dict[str, Any]:
    matches = store.get_matches_for_round(round_id)
    return {"round_id": str(round_id), **summarize_statuses(str(m.get("met_status") or "") for m in matches)}
