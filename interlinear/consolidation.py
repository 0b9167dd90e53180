"""Duplicate text consolidation."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .structures import TextUnit

logger = logging.getLogger(__name__)


def consolidate(units: Sequence[TextUnit]) -> int:
    """Group units by identical source text and mark all but the first.

    The first unit seen for a text becomes the representative and keeps the
    ids of its duplicates. Returns the number of units marked as duplicates.
    """

    representatives: Dict[str, TextUnit] = {}
    duplicates = 0
    for unit in units:
        unit.representative_id = None
        unit.duplicate_ids = []

    for unit in units:
        if not unit.original_text:
            continue
        representative = representatives.get(unit.original_text)
        if representative is None:
            representatives[unit.original_text] = unit
            continue
        unit.representative_id = representative.unit_id
        representative.duplicate_ids.append(unit.unit_id)
        duplicates += 1

    if duplicates:
        logger.info("Detected %d duplicate text unit(s).", duplicates)
    return duplicates


def propagate(units: Sequence[TextUnit]) -> int:
    """Copy each representative's translation onto its duplicates."""

    by_id: Dict[str, TextUnit] = {unit.unit_id: unit for unit in units if not unit.is_duplicate}
    copied = 0
    for unit in units:
        if not unit.is_duplicate:
            continue
        representative = by_id.get(unit.representative_id or "")
        if representative is None or representative.translated_text is None:
            continue
        unit.translated_text = representative.translated_text
        copied += 1
    return copied


def representatives(units: Sequence[TextUnit]) -> List[TextUnit]:
    return [unit for unit in units if not unit.is_duplicate]
