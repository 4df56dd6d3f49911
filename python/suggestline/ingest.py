import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import structlog

from suggestline.markup import is_blank_value, normalize, normalize_optional
from suggestline.models import (
    BulletState,
    EntryState,
    FieldState,
    SectionKind,
    SectionState,
)

logger = structlog.get_logger(__name__)

# Entry keys that are never metadata fields.
RESERVED_KEYS = ("id", "bullets", "fieldOrder")

# For these kinds the producer's fieldOrder is less reliable than the order
# keys appear in the payload, which follows the uploaded document.
_SOURCE_ORDER_KINDS = (SectionKind.EXPERIENCE, SectionKind.EDUCATION)


def parse_tailoring(payload: Union[str, bytes, Mapping[str, Any], None]) -> Optional[SectionState]:
    """
    Converts a tailoring payload into a canonical SectionState.

    Accepts a JSON string or an already-decoded mapping of the form
    {sectionName, type, entries: [...]}. Any malformed or unrecognized
    shape yields None; the caller treats that as "no suggestions".
    """
    if not payload:
        return None

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Tailoring payload is not valid JSON", error=str(e))
            return None

    if not isinstance(payload, Mapping):
        logger.warning("Tailoring payload is not an object", payload_type=type(payload).__name__)
        return None

    raw_kind = payload.get("type")
    raw_entries = payload.get("entries")
    if not raw_kind or raw_entries is None:
        logger.warning("Tailoring payload missing type or entries")
        return None
    if not isinstance(raw_entries, list):
        logger.warning("Tailoring entries is not a list")
        return None

    try:
        kind = SectionKind(str(raw_kind).strip().lower())
    except ValueError:
        logger.warning("Unknown section type", section_type=raw_kind)
        return None

    entries = []
    for index, raw_entry in enumerate(raw_entries):
        if not isinstance(raw_entry, Mapping):
            logger.debug("Skipping non-object entry", index=index)
            continue
        entries.append(_parse_entry(raw_entry, index, kind))

    heading = payload.get("sectionName")
    return SectionState(heading=heading if isinstance(heading, str) else "", kind=kind, entries=entries)


def _is_field_candidate(value: Any) -> bool:
    return isinstance(value, Mapping) and ("original" in value or "suggested" in value)


def _resolve_field_order(raw_entry: Mapping[str, Any], candidates: List[str], kind: SectionKind) -> List[str]:
    supplied = raw_entry.get("fieldOrder")
    if kind in _SOURCE_ORDER_KINDS:
        return list(candidates)
    if not isinstance(supplied, list) or not supplied:
        return list(candidates)
    if not all(isinstance(key, str) for key in supplied):
        return list(candidates)

    # Only trusted when it names exactly the candidate keys, once each.
    if len(supplied) == len(candidates) and set(supplied) == set(candidates):
        return list(supplied)

    logger.debug("Ignoring incomplete fieldOrder", supplied=supplied, candidates=candidates)
    return list(candidates)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _parse_entry(raw_entry: Mapping[str, Any], index: int, kind: SectionKind) -> EntryState:
    entry_id = _text(raw_entry.get("id")) or f"entry-{index}"

    candidates = [
        key for key, value in raw_entry.items() if key not in RESERVED_KEYS and _is_field_candidate(value)
    ]
    field_order = _resolve_field_order(raw_entry, candidates, kind)

    fields: Dict[str, FieldState] = {}
    for key in field_order:
        raw_field = raw_entry[key]
        fields[key] = FieldState(
            key=key,
            original=normalize(_text(raw_field.get("original"))),
            suggested=normalize_optional(_text(raw_field.get("suggested"))),
            final=None,
        )

    bullets: List[BulletState] = []
    raw_bullets = raw_entry.get("bullets")
    if isinstance(raw_bullets, list):
        for b_index, raw_bullet in enumerate(raw_bullets):
            if not isinstance(raw_bullet, Mapping):
                continue
            bullets.append(
                BulletState(
                    id=_text(raw_bullet.get("id")) or f"{entry_id}-b{b_index}",
                    original=normalize(_text(raw_bullet.get("original"))),
                    suggested=normalize_optional(_text(raw_bullet.get("suggested"))),
                    final=None,
                )
            )

    return EntryState(id=entry_id, fields=fields, field_order=field_order, bullets=bullets)


def _has_content(unit) -> bool:
    return any(not is_blank_value(value) for value in (unit.original, unit.suggested, unit.final))


def visible_fields(entry: EntryState) -> Iterator[FieldState]:
    """Fields in display order, minus those with nothing worth rendering."""
    for field in entry.ordered_fields():
        if _has_content(field):
            yield field


def visible_bullets(entry: EntryState) -> Iterator[BulletState]:
    for bullet in entry.bullets:
        if _has_content(bullet):
            yield bullet


def has_suggestions(section: Optional[SectionState]) -> bool:
    """True when any unit still carries a suggestion that differs from its original."""
    if section is None:
        return False

    for entry in section.entries:
        for unit in list(entry.fields.values()) + list(entry.bullets):
            if unit.suggested and unit.suggested != unit.original:
                return True
    return False
