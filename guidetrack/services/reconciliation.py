import logging
from typing import Dict, Iterable, Tuple

from ..models import GuideMatch, NormalizedGuide, ReconciliationKey, ReconciliationResult
from .normalizer import normalize_key

logger = logging.getLogger(__name__)

def reconciliation_key(guide: NormalizedGuide) -> ReconciliationKey:
    return (normalize_key(guide.guide_number), (guide.sub_destination or "").strip().lower())

def _index(guides: Iterable[NormalizedGuide], side: str) -> Tuple[Dict[ReconciliationKey, NormalizedGuide], int]:
    index: Dict[ReconciliationKey, NormalizedGuide] = {}
    collisions = 0
    for guide in guides:
        key = reconciliation_key(guide)
        if key in index:
            collisions += 1
            logger.warning("Duplicate %s guide key %s, keeping the later record", side, key)
        index[key] = guide
    return index, collisions

def reconcile(origin_side: Iterable[NormalizedGuide], destination_side: Iterable[NormalizedGuide]) -> ReconciliationResult:
    """Partition both sides into matches and one-sided records.

    Duplicates within one side are last-write-wins; only the surviving record
    of a key is reported.
    """
    origin_index, origin_dupes = _index(origin_side, "origin")
    destination_index, destination_dupes = _index(destination_side, "destination")

    result = ReconciliationResult(duplicate_keys=origin_dupes + destination_dupes)
    for key, origin_guide in origin_index.items():
        destination_guide = destination_index.get(key)
        if destination_guide is None:
            result.missing_in_destination.append(origin_guide)
            continue
        result.matches.append(
            GuideMatch(
                key=key,
                guide_number=origin_guide.guide_number,
                sub_destination=origin_guide.sub_destination,
                origin_record=origin_guide,
                destination_record=destination_guide,
            )
        )

    for key, destination_guide in destination_index.items():
        if key not in origin_index:
            result.missing_in_origin.append(destination_guide)

    logger.debug(
        "Reconciled %d origin / %d destination keys: %d matches",
        len(origin_index), len(destination_index), len(result.matches),
    )
    return result
