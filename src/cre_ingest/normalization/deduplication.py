"""Duplicate detection and resolution for normalized property records."""

import uuid
from dataclasses import dataclass, field

from cre_ingest.logging import get_logger
from cre_ingest.models import NormalizedPropertyRecord
from cre_ingest.normalization.similarity import (
    DEFAULT_DUPLICATE_THRESHOLD,
    calculate_similarity,
    score_similarity,
)

logger = get_logger(__name__)


@dataclass
class DeduplicationResult:
    """Outcome of deduplicating a batch of normalized records."""

    deduplicated: list[NormalizedPropertyRecord] = field(default_factory=list)
    groups: list[list[NormalizedPropertyRecord]] = field(default_factory=list)
    removed_count: int = 0


def _new_group_id() -> str:
    return f"group_{uuid.uuid4().hex[:12]}"


def find_duplicates(
    records: list[NormalizedPropertyRecord],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
) -> list[list[NormalizedPropertyRecord]]:
    """Group records by greedy single-pass matching against a seed record.

    Algorithm:
    1. Take the first record not yet in a group as the seed
    2. Every later unprocessed record whose similarity to the seed is at
       least ``threshold`` joins the seed's group
    3. Groups of one are discarded

    Members are only compared with the seed, never with each other, so the
    result depends on input order and is not a transitive closure.

    Args:
        records: Normalized records to scan.
        threshold: Minimum similarity to count as a duplicate.

    Returns:
        Duplicate groups (each of size >= 2), in seed order.
    """
    groups: list[list[NormalizedPropertyRecord]] = []
    processed = [False] * len(records)

    for i, seed in enumerate(records):
        if processed[i]:
            continue
        processed[i] = True
        group = [seed]

        for j in range(i + 1, len(records)):
            if processed[j]:
                continue
            similarity = calculate_similarity(seed, records[j])
            if similarity >= threshold:
                logger.debug(
                    "duplicate_candidate_matched",
                    seed=seed.id,
                    candidate=records[j].id,
                    score=score_similarity(seed, records[j]).to_dict(),
                )
                group.append(records[j])
                processed[j] = True

        if len(group) > 1:
            groups.append(group)

    return groups


def deduplicate_properties(
    records: list[NormalizedPropertyRecord],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
) -> DeduplicationResult:
    """Collapse each duplicate group onto its highest-confidence record.

    Non-duplicates are kept unchanged and in input order, followed by one
    survivor per group. Every member of a group, survivor included, is tagged
    with the same fresh ``duplicate_group`` id. On equal confidence the
    earliest member wins.

    Args:
        records: Normalized records to deduplicate.
        threshold: Minimum similarity to count as a duplicate.

    Returns:
        DeduplicationResult with survivors, the groups, and the removed count.
    """
    groups = find_duplicates(records, threshold)

    grouped_ids = {id(record) for group in groups for record in group}
    deduplicated = [record for record in records if id(record) not in grouped_ids]

    for group in groups:
        # max() keeps the first maximal element, so earlier records win ties
        survivor = max(group, key=lambda r: r.confidence)
        group_id = _new_group_id()
        for record in group:
            record.duplicate_group = group_id
        deduplicated.append(survivor)

        logger.info(
            "duplicate_group_resolved",
            group=group_id,
            size=len(group),
            survivor=survivor.id,
            sources=[r.source for r in group],
        )

    return DeduplicationResult(
        deduplicated=deduplicated,
        groups=groups,
        removed_count=len(records) - len(deduplicated),
    )
