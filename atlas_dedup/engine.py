#!/usr/bin/env python3
"""
Landmark Atlas — Deduplication Engine

Two modes:

    merge       incremental, in memory.  Folds incoming records (fresh store
                rows, generative results) into an existing collection using
                the interactive match policy.  Never removes anything.

    reconcile   batch, against the whole persistent store.  Groups records
                with the batch match policy, keeps the most complete member
                of each group (enriched from the others), deletes the rest
                from the store and blacklists their ids.

Both modes resolve a pair the same way: the higher-scored record is the base
and only its empty fields are filled from the other (see records.overlay).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Iterable

from .algorithms.geo_proximity import haversine_m
from .algorithms.match_policies import (
    MatchingConfig,
    batch_match,
    in_exception_set,
    interactive_match,
)
from .algorithms.name_similarity import token_set_similarity
from .algorithms.record_scorer import score_record
from .blacklist import Blacklist
from .records import Record, filled_fields, overlay

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pair resolution
# ---------------------------------------------------------------------------


def resolve_pair(
    a: Record,
    b: Record,
    weights: dict[str, float] | None = None,
) -> Record:
    """Overlay the lower-scored record onto the higher-scored one. Ties keep a as base."""
    if score_record(b, weights) > score_record(a, weights):
        return overlay(b, a)
    return overlay(a, b)


# ---------------------------------------------------------------------------
# Incremental merge
# ---------------------------------------------------------------------------


def merge(
    existing: Iterable[Record],
    incoming: Iterable[Record],
    config: MatchingConfig | None = None,
) -> list[Record]:
    """
    Fold incoming records into an existing collection.

    For each incoming record:
        1. same id already present → resolve the pair into that slot
        2. an interactive-match partner present → resolve into the partner's
           slot; the slot keeps the partner's id and provenance
        3. otherwise → append unchanged

    The first matching partner in collection order wins.  Result order is
    the existing records followed by the inserted ones.  Inputs are not
    mutated.
    """
    if config is None:
        config = MatchingConfig()
    weights = config.scoring

    slots: dict[str, Record] = {}
    for record in existing:
        if record.id in slots:
            slots[record.id] = resolve_pair(slots[record.id], record, weights)
        else:
            slots[record.id] = record

    for record in incoming:
        if record.id in slots:
            slots[record.id] = resolve_pair(slots[record.id], record, weights)
            continue

        partner = next(
            (cand for cand in slots.values() if interactive_match(cand, record, config)),
            None,
        )
        if partner is None:
            slots[record.id] = record
            continue

        merged = resolve_pair(partner, record, weights)
        if merged.id != partner.id:
            merged = replace(merged, id=partner.id, provenance=partner.provenance)
        slots[partner.id] = merged

    return list(slots.values())


# ---------------------------------------------------------------------------
# Batch reconciliation: planning
# ---------------------------------------------------------------------------


@dataclass
class DuplicateGroup:
    """One batch-matched group: a survivor and the records it absorbs."""

    original: Record
    survivor: Record
    losers: list[Record]
    scores: dict[str, float]

    @property
    def patch(self) -> dict[str, Any]:
        """Fields the overlay filled on the survivor."""
        return filled_fields(self.original, self.survivor)

    def to_dict(self) -> dict[str, Any]:
        return {
            "survivor_id": self.survivor.id,
            "survivor_name": self.survivor.name,
            "loser_ids": [r.id for r in self.losers],
            "loser_names": [r.name for r in self.losers],
            "scores": dict(self.scores),
            "filled_fields": sorted(self.patch),
        }


@dataclass
class ReviewPair:
    """A near-miss batch candidate, listed for an operator but never merged."""

    record_a_id: str
    record_b_id: str
    name_a: str
    name_b: str
    distance_m: float
    token_similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_a_id": self.record_a_id,
            "record_b_id": self.record_b_id,
            "name_a": self.name_a,
            "name_b": self.name_b,
            "distance_m": round(self.distance_m, 1),
            "token_similarity": round(self.token_similarity, 4),
        }


@dataclass
class ReconcilePlan:
    groups: list[DuplicateGroup] = field(default_factory=list)
    singletons: list[Record] = field(default_factory=list)
    review_pairs: list[ReviewPair] = field(default_factory=list)

    @property
    def scheduled_ids(self) -> list[str]:
        return [loser.id for g in self.groups for loser in g.losers]


def _build_group(members: list[Record], weights: dict[str, float]) -> DuplicateGroup:
    scores = {m.id: score_record(m, weights) for m in members}
    # Stable sort: on equal score the earlier record survives
    ranked = sorted(members, key=lambda m: scores[m.id], reverse=True)
    original, losers = ranked[0], ranked[1:]
    survivor = original
    for loser in losers:
        survivor = overlay(survivor, loser)
    return DuplicateGroup(original=original, survivor=survivor, losers=losers, scores=scores)


def plan_reconcile(
    records: list[Record],
    config: MatchingConfig | None = None,
) -> ReconcilePlan:
    """
    Group likely duplicates across the whole store.

    Single pass, first match: each unprocessed record seeds a group with
    every later unprocessed record that batch-matches the seed.  Grouping is
    not transitive beyond the seed.  Records with invalid coordinates or in
    an exception group are never grouped.
    """
    if config is None:
        config = MatchingConfig()
    weights = config.scoring
    max_distance = config.batch["max_distance_m"]
    review_threshold = config.batch["review_threshold"]

    plan = ReconcilePlan()
    processed: set[int] = set()

    for i, seed in enumerate(records):
        if i in processed:
            continue
        processed.add(i)
        members = [seed]

        groupable = seed.has_valid_coordinates and not in_exception_set(seed, config)
        if groupable:
            for j in range(i + 1, len(records)):
                if j in processed:
                    continue
                other = records[j]
                if batch_match(seed, other, config):
                    members.append(other)
                    processed.add(j)
                    continue
                if not other.has_valid_coordinates or in_exception_set(other, config):
                    continue
                distance = haversine_m(seed.coordinates, other.coordinates)
                if distance >= max_distance:
                    continue
                similarity = token_set_similarity(seed.name, other.name)
                if similarity >= review_threshold:
                    plan.review_pairs.append(
                        ReviewPair(seed.id, other.id, seed.name, other.name, distance, similarity)
                    )

        if len(members) > 1:
            plan.groups.append(_build_group(members, weights))
        else:
            plan.singletons.append(seed)

    logger.info(
        "Reconcile plan: %d records, %d groups, %d scheduled deletions, %d review pairs",
        len(records), len(plan.groups), len(plan.scheduled_ids), len(plan.review_pairs),
    )
    return plan


# ---------------------------------------------------------------------------
# Batch reconciliation: execution
# ---------------------------------------------------------------------------


@dataclass
class ReconcileResult:
    kept: list[Record] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    errors: int = 0
    groups: list[DuplicateGroup] = field(default_factory=list)
    review_pairs: list[ReviewPair] = field(default_factory=list)
    dry_run: bool = False
    blacklist_saved: bool = True

    def summary(self) -> dict[str, Any]:
        """Operator-facing run summary."""
        scheduled = sum(len(g.losers) for g in self.groups)
        return {
            "dry_run": self.dry_run,
            "groups": len(self.groups),
            "survivors": len(self.kept),
            "scheduled_deletions": scheduled,
            "deleted": len(self.deleted_ids),
            "deleted_ids": list(self.deleted_ids),
            "errors": self.errors,
            "review_pairs": len(self.review_pairs),
            "blacklist_saved": self.blacklist_saved,
        }


def _already_gone(error: Exception) -> bool:
    """A delete that failed because the row no longer exists."""
    return getattr(error, "status_code", None) == 404


async def reconcile(
    records: list[Record],
    store: Any,
    blacklist: Blacklist | None,
    config: MatchingConfig | None = None,
    *,
    dry_run: bool = False,
    delay: float | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ReconcileResult:
    """
    Apply a reconcile plan to the persistent store.

    Per group: patch the survivor when the overlay filled anything, then
    delete each loser serially, pausing ``delay`` seconds after every delete
    call.  A failed update or delete is logged and counted; the run goes on.
    A loser the store reports as missing counts as deleted.  Deleted ids are
    added to the blacklist, which is saved once at the end; a failed save is
    logged and counted and the result is still returned.  A dry run computes
    the plan and touches nothing.
    """
    if config is None:
        config = MatchingConfig()
    if delay is None:
        delay = float(config.maintenance["delete_delay_s"])

    if blacklist is not None:
        records = blacklist.filter(records)

    plan = plan_reconcile(records, config)
    result = ReconcileResult(
        groups=plan.groups,
        review_pairs=plan.review_pairs,
        dry_run=dry_run,
    )

    if dry_run:
        result.kept = [g.survivor for g in plan.groups] + list(plan.singletons)
        logger.info("Dry run: %d deletions would be attempted", len(plan.scheduled_ids))
        return result

    for group in plan.groups:
        survivor = group.survivor
        patch = group.patch
        if patch:
            try:
                await store.update(survivor.id, patch)
                logger.info("Enriched %s (%s): %s", survivor.id, survivor.name, ", ".join(sorted(patch)))
            except Exception as e:
                logger.warning("Failed to update survivor %s (%s): %s", survivor.id, survivor.name, e)
                result.errors += 1
                survivor = group.original
        result.kept.append(survivor)

        for loser in group.losers:
            try:
                await store.delete(loser.id)
            except Exception as e:
                if _already_gone(e):
                    logger.info("%s (%s) was already gone from the store", loser.id, loser.name)
                    result.deleted_ids.append(loser.id)
                else:
                    logger.warning("Failed to delete %s (%s): %s", loser.id, loser.name, e)
                    result.errors += 1
                    result.kept.append(loser)
            else:
                result.deleted_ids.append(loser.id)
                logger.info("Deleted %s (%s), duplicate of %s", loser.id, loser.name, survivor.id)
            await sleep(delay)

    result.kept.extend(plan.singletons)

    if blacklist is not None and result.deleted_ids:
        added = blacklist.add(result.deleted_ids)
        try:
            blacklist.save()
        except OSError as e:
            logger.error(
                "Failed to save blacklist after deleting %s: %s", ", ".join(result.deleted_ids), e
            )
            result.errors += 1
            result.blacklist_saved = False
        else:
            logger.info("Blacklisted %d new ids", added)

    logger.info(
        "Reconcile complete: %d kept, %d deleted, %d errors",
        len(result.kept), len(result.deleted_ids), result.errors,
    )
    return result
