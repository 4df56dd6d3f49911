"""
Reintegration of freshly fetched state with local state.

Fetching the persisted tailoring can race with a regeneration whose result
was applied locally but not yet saved. The caller passes the ids of such
bullets, with expiry timestamps, so these functions stay pure.
"""

import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import structlog

from suggestline.models import BulletState, EntryRecord, EntryState, SectionState

logger = structlog.get_logger(__name__)

# Keys of a legacy flat record that are not field values.
_LEGACY_RESERVED = ("bullets", "fields", "fieldOrder")


def live_markers(recently_regenerated: Optional[Mapping[str, float]], now: Optional[float] = None) -> Set[str]:
    """Ids whose expiry lies in the future."""
    if not recently_regenerated:
        return set()
    now = time.monotonic() if now is None else now
    return {bullet_id for bullet_id, expires_at in recently_regenerated.items() if now < expires_at}


def merge_regenerated(
    fresh: SectionState,
    previous: Optional[SectionState],
    recently_regenerated: Optional[Mapping[str, float]] = None,
    now: Optional[float] = None,
) -> SectionState:
    """
    Keeps the previous suggested/final pair of every recently regenerated
    bullet whose suggestion differs from the fetched one. Everything else
    comes from `fresh`.
    """
    live = live_markers(recently_regenerated, now)
    if previous is None or not live:
        return fresh

    previous_bullets: Dict[str, BulletState] = {}
    for entry in previous.entries:
        for bullet in entry.bullets:
            if bullet.id in live:
                previous_bullets[bullet.id] = bullet

    if not previous_bullets:
        return fresh

    entries: List[EntryState] = []
    for entry in fresh.entries:
        bullets = []
        for bullet in entry.bullets:
            prior = previous_bullets.get(bullet.id)
            if prior is not None and prior.suggested != bullet.suggested:
                logger.debug("Keeping regenerated suggestion", bullet_id=bullet.id)
                bullet = bullet.model_copy(update={"suggested": prior.suggested, "final": prior.final})
            bullets.append(bullet)
        entries.append(entry.model_copy(update={"bullets": bullets}))

    return fresh.model_copy(update={"entries": entries})


def _unpack_record(saved: Any) -> Optional[Tuple[Dict[str, Any], Optional[List[Any]], Optional[List[Any]]]]:
    """
    Reads one persisted entry in either format.
    Returns (field_values, bullets, field_order) or None when unusable.
    """
    if isinstance(saved, EntryRecord):
        values = {f.key: f.value for f in saved.fields}
        return values, list(saved.bullets), list(saved.field_order)

    if not isinstance(saved, Mapping):
        return None

    bullets = saved.get("bullets")
    bullets = bullets if isinstance(bullets, list) else None

    raw_fields = saved.get("fields")
    if isinstance(raw_fields, list):
        values = {}
        for item in raw_fields:
            if isinstance(item, Mapping) and isinstance(item.get("key"), str):
                values[item["key"]] = item.get("value")
        order = saved.get("fieldOrder")
        return values, bullets, order if isinstance(order, list) else None

    # Legacy format: field values are top-level keys.
    values = {key: value for key, value in saved.items() if key not in _LEGACY_RESERVED}
    return values, bullets, None


def _heal_order(saved_order: Sequence[Any], entry: EntryState) -> List[str]:
    order: List[str] = []
    for key in saved_order:
        if isinstance(key, str) and key in entry.fields and key not in order:
            order.append(key)
    for key in entry.field_order:
        if key not in order:
            order.append(key)
    for key in entry.fields:
        if key not in order:
            order.append(key)
    return order


def apply_saved_finals(section: SectionState, records: Any) -> SectionState:
    """
    Re-applies persisted values to a freshly parsed section.

    Records are matched to entries by position. A saved value becomes the
    unit's final (clearing its suggestion) only when it differs from the
    original; otherwise the pending suggestion is kept. Records, fields and
    bullets that no longer line up with the section are skipped.
    """
    if not records or not isinstance(records, list):
        return section

    entries: List[EntryState] = []
    for idx, entry in enumerate(section.entries):
        unpacked = _unpack_record(records[idx]) if idx < len(records) else None
        if unpacked is None:
            entries.append(entry)
            continue

        values, saved_bullets, saved_order = unpacked

        fields = dict(entry.fields)
        for key, field in entry.fields.items():
            saved_value = values.get(key)
            if isinstance(saved_value, str) and saved_value != field.original:
                fields[key] = field.model_copy(update={"final": saved_value, "suggested": None})

        bullets = []
        for b_idx, bullet in enumerate(entry.bullets):
            saved_value = saved_bullets[b_idx] if saved_bullets and b_idx < len(saved_bullets) else None
            if isinstance(saved_value, str) and saved_value != bullet.original:
                bullet = bullet.model_copy(update={"final": saved_value, "suggested": None})
            bullets.append(bullet)

        if saved_bullets and len(saved_bullets) > len(entry.bullets):
            logger.debug(
                "Saved record has extra bullets",
                entry_id=entry.id,
                saved=len(saved_bullets),
                current=len(entry.bullets),
            )

        update = {"fields": fields, "bullets": bullets}
        if saved_order:
            update["field_order"] = _heal_order(saved_order, entry)
        entries.append(entry.model_copy(update=update))

    if len(records) > len(section.entries):
        logger.debug("Ignoring saved records without an entry", extra=len(records) - len(section.entries))

    return section.model_copy(update={"entries": entries})


def rebuild_after_fetch(
    fresh: Optional[SectionState],
    previous: Optional[SectionState],
    saved_records: Any = None,
    recently_regenerated: Optional[Mapping[str, float]] = None,
    now: Optional[float] = None,
) -> Optional[SectionState]:
    """
    Reload pipeline: merge regenerated suggestions, re-apply saved finals,
    then merge again so the saved values cannot overwrite a regeneration.
    """
    if fresh is None:
        return None

    now = time.monotonic() if now is None else now
    section = merge_regenerated(fresh, previous, recently_regenerated, now)
    if saved_records:
        section = apply_saved_finals(section, saved_records)
    return merge_regenerated(section, previous, recently_regenerated, now)
