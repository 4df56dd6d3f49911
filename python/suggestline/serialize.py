from typing import Any, Dict, List

from suggestline.models import (
    PERSIST_BULLET,
    PERSIST_FIELD,
    EntryRecord,
    EntryState,
    FieldRecord,
    SectionState,
    resolve_value,
)


def serialize_entry(entry: EntryState) -> EntryRecord:
    """
    Flattens one entry. Fields follow `field_order`; keys missing from it
    are appended to both the fields and the returned order. A field is only
    omitted when it resolves to None; an empty string is kept.
    """
    field_order: List[str] = []
    fields: List[FieldRecord] = []

    def emit(key: str):
        if key in field_order or key not in entry.fields:
            return
        value = resolve_value(entry.fields[key], PERSIST_FIELD)
        if value is None:
            return
        field_order.append(key)
        fields.append(FieldRecord(key=key, value=value))

    for key in entry.field_order:
        emit(key)
    for key in entry.fields:
        emit(key)

    bullets = [resolve_value(bullet, PERSIST_BULLET) or "" for bullet in entry.bullets]
    return EntryRecord(field_order=field_order, fields=fields, bullets=bullets)


def serialize_section(section: SectionState) -> List[EntryRecord]:
    return [serialize_entry(entry) for entry in section.entries]


def dump_records(records: List[EntryRecord]) -> List[Dict[str, Any]]:
    """JSON-ready records using the wire key names (fieldOrder)."""
    return [record.model_dump(by_alias=True) for record in records]
