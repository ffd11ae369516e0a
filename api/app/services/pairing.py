from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable


class PairingInvariantError(ValueError):
    pass


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return tuple(sorted((user_a, user_b)))


class AvoidRelation:
    """Pairwise "never match these two" lookup.

    Entries are stored as given (directed) and queried in both directions, so a
    ban recorded only as (a, b) still forbids pairing b with a.
    """

    def __init__(self, entries: Iterable[tuple[str, str]] = ()) -> None:
        self._directed: set[tuple[str, str]] = set()
        for user_id, avoid_user_id in entries:
            self.add(user_id, avoid_user_id)

    def add(self, user_id: str, avoid_user_id: str) -> None:
        if user_id == avoid_user_id:
            return
        self._directed.add((str(user_id), str(avoid_user_id)))

    def forbids(self, user_a: str, user_b: str) -> bool:
        return (user_a, user_b) in self._directed or (user_b, user_a) in self._directed

    def __len__(self) -> int:
        return len(self._directed)


@dataclass
class PriorPairings:
    """Snapshot of who was grouped with whom, and when."""

    last_paired_at: dict[frozenset[str], datetime] = field(default_factory=dict)
    recent_partners: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_matches(cls, rows: Iterable[tuple[Iterable[str], datetime]]) -> "PriorPairings":
        last_paired_at: dict[frozenset[str], datetime] = {}
        latest_for_user: dict[str, tuple[datetime, set[str]]] = {}

        for participant_ids, paired_at in rows:
            members = sorted({str(p) for p in participant_ids})
            for i, a in enumerate(members):
                for b in members[i + 1:]:
                    key = frozenset((a, b))
                    seen = last_paired_at.get(key)
                    if seen is None or paired_at > seen:
                        last_paired_at[key] = paired_at
            for uid in members:
                others = {m for m in members if m != uid}
                current = latest_for_user.get(uid)
                if current is None or paired_at > current[0]:
                    latest_for_user[uid] = (paired_at, others)
                elif paired_at == current[0]:
                    current[1].update(others)

        recent = {uid: partners for uid, (_, partners) in latest_for_user.items()}
        return cls(last_paired_at=last_paired_at, recent_partners=recent)

    def last_paired(self, user_a: str, user_b: str) -> datetime | None:
        return self.last_paired_at.get(frozenset((user_a, user_b)))

    def was_recent_partner(self, user_a: str, user_b: str) -> bool:
        return user_b in self.recent_partners.get(user_a, set()) or user_a in self.recent_partners.get(user_b, set())


@dataclass
class PairingResult:
    groups: list[tuple[str, ...]]
    unplaced: list[str]

    @property
    def unplaced_count(self) -> int:
        return len(self.unplaced)

    def to_dict(self) -> dict[str, Any]:
        return {
            "groups": [list(g) for g in self.groups],
            "unplaced": list(self.unplaced),
            "unplaced_count": self.unplaced_count,
        }


def _partner_key(user_id: str, candidate: str, history: PriorPairings) -> tuple[Any, ...]:
    # Lower sorts first: non-recent partners, then never paired, then oldest pairing, then id.
    last = history.last_paired(user_id, candidate)
    age_key = (0,) if last is None else (1, last.timestamp())
    return (history.was_recent_partner(user_id, candidate), age_key, candidate)


def _fits(group: tuple[str, ...], user_id: str, avoid: AvoidRelation) -> bool:
    return not any(avoid.forbids(user_id, member) for member in group)


def compute_matches(
    active_user_ids: Iterable[str],
    history: PriorPairings | None = None,
    avoid: AvoidRelation | None = None,
    *,
    seed: int | None = None,
) -> PairingResult:
    """Greedy fairness-aware pairing for one round.

    Users are visited in a seeded shuffle of the sorted pool. Each unmatched
    user takes the eligible partner they have not just been matched with and
    were paired with least recently (never beats ever), ties broken by id.
    A single leftover joins the newest group it does not conflict with. Users
    who avoid everyone else in the pool, and any leftover that fits nowhere,
    are returned in ``unplaced``.
    """
    history = history or PriorPairings()
    avoid = avoid or AvoidRelation()

    pool = sorted({str(u) for u in active_user_ids})
    if len(pool) < 2:
        return PairingResult(groups=[], unplaced=pool)

    order = pool[:]
    random.Random(seed).shuffle(order)

    matched: set[str] = set()
    groups: list[tuple[str, ...]] = []
    # Users who avoid the whole pool never count as the odd one out.
    no_partner: list[str] = []
    leftovers: list[str] = []

    for user_id in order:
        if user_id in matched:
            continue
        candidates = [v for v in order if v != user_id and v not in matched and not avoid.forbids(user_id, v)]
        if not candidates:
            matched.add(user_id)
            if any(v != user_id and not avoid.forbids(user_id, v) for v in pool):
                leftovers.append(user_id)
            else:
                no_partner.append(user_id)
            continue
        partner = min(candidates, key=lambda v: _partner_key(user_id, v, history))
        matched.add(user_id)
        matched.add(partner)
        groups.append((user_id, partner))

    unplaced: list[str] = list(no_partner)
    if len(leftovers) == 1 and groups:
        leftover = leftovers[0]
        for idx in range(len(groups) - 1, -1, -1):
            if _fits(groups[idx], leftover, avoid):
                groups[idx] = groups[idx] + (leftover,)
                break
        else:
            unplaced.append(leftover)
    else:
        unplaced.extend(leftovers)

    return PairingResult(groups=groups, unplaced=sorted(unplaced))


def check_groups(groups: Iterable[Iterable[str]], avoid: AvoidRelation | None = None) -> None:
    avoid = avoid or AvoidRelation()
    seen: set[str] = set()
    trios = 0
    for group in groups:
        members = list(group)
        if len(members) < 2:
            raise PairingInvariantError(f"group too small: {members}")
        if len(set(members)) != len(members):
            raise PairingInvariantError(f"duplicate member in group: {members}")
        if len(members) > 3:
            raise PairingInvariantError(f"group too large: {members}")
        if len(members) == 3:
            trios += 1
        overlap = seen.intersection(members)
        if overlap:
            raise PairingInvariantError(f"user(s) placed twice: {sorted(overlap)}")
        seen.update(members)
        for i, a in enumerate(members):
            for b in members[i + 1:]:
                if avoid.forbids(a, b):
                    raise PairingInvariantError(f"forbidden pair grouped: {canonical_pair(a, b)}")
    if trios > 1:
        raise PairingInvariantError(f"expected at most one group of 3, got {trios}")
