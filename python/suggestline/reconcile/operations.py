"""
Pure state transitions on a SectionState.

Every function returns a new snapshot and leaves its input untouched.
Unknown entry/field/bullet ids return the section unchanged.
"""

from typing import Callable, List, Optional, Tuple

import structlog

from suggestline.markup import normalize
from suggestline.models import (
    BulletState,
    EntryState,
    FieldState,
    ReviewAction,
    ReviewActionType,
    SectionState,
)

logger = structlog.get_logger(__name__)

BULLET_PREFIX = "Bul:"
FIELD_PREFIX = "Fld:"


def _map_bullet(
    section: SectionState, bullet_id: str, change: Callable[[BulletState], BulletState]
) -> SectionState:
    entries: List[EntryState] = []
    touched = False
    for entry in section.entries:
        if entry.find_bullet(bullet_id) is None:
            entries.append(entry)
            continue
        bullets = [change(b) if b.id == bullet_id else b for b in entry.bullets]
        entries.append(entry.model_copy(update={"bullets": bullets}))
        touched = True

    if not touched:
        return section
    return section.model_copy(update={"entries": entries})


def _map_field(
    section: SectionState, entry_id: str, key: str, change: Callable[[FieldState], FieldState]
) -> SectionState:
    entries: List[EntryState] = []
    touched = False
    for entry in section.entries:
        field = entry.fields.get(key) if entry.id == entry_id else None
        if field is None:
            entries.append(entry)
            continue
        fields = dict(entry.fields)
        fields[key] = change(field)
        entries.append(entry.model_copy(update={"fields": fields}))
        touched = True

    if not touched:
        return section
    return section.model_copy(update={"entries": entries})


def _accept(state):
    if state.suggested is None:
        return state
    return state.model_copy(update={"final": normalize(state.suggested), "suggested": None})


def _reject(state):
    if state.suggested is None:
        return state
    return state.model_copy(update={"suggested": None})


def _edit(text: str):
    def change(state):
        return state.model_copy(update={"final": normalize(text), "suggested": None})

    return change


# ===== BULLET OPERATIONS =====


def accept_bullet(section: SectionState, bullet_id: str) -> SectionState:
    return _map_bullet(section, bullet_id, _accept)


def reject_bullet(section: SectionState, bullet_id: str) -> SectionState:
    return _map_bullet(section, bullet_id, _reject)


def update_bullet(section: SectionState, bullet_id: str, text: str) -> SectionState:
    """A manual edit always wins over any pending suggestion."""
    return _map_bullet(section, bullet_id, _edit(text))


def update_bullet_suggestion(section: SectionState, bullet_id: str, text: str) -> SectionState:
    """
    Stores a regenerated suggestion. `final` is left alone, so a unit may
    carry both; renderers show the suggestion, persistence keeps the final.
    """

    def change(bullet: BulletState) -> BulletState:
        return bullet.model_copy(update={"suggested": normalize(text)})

    return _map_bullet(section, bullet_id, change)


# ===== FIELD OPERATIONS =====


def accept_field(section: SectionState, entry_id: str, key: str) -> SectionState:
    return _map_field(section, entry_id, key, _accept)


def reject_field(section: SectionState, entry_id: str, key: str) -> SectionState:
    return _map_field(section, entry_id, key, _reject)


def update_field(section: SectionState, entry_id: str, key: str, text: str) -> SectionState:
    return _map_field(section, entry_id, key, _edit(text))


# ===== REVIEW ACTIONS =====


def parse_target_id(target_id: str) -> Optional[Tuple[str, ...]]:
    """
    Splits a review target id.
    'Bul:b1' -> ('bullet', 'b1'); 'Fld:e1:title' -> ('field', 'e1', 'title').
    """
    if target_id.startswith(BULLET_PREFIX):
        bullet_id = target_id[len(BULLET_PREFIX) :]
        return ("bullet", bullet_id) if bullet_id else None
    if target_id.startswith(FIELD_PREFIX):
        entry_id, sep, key = target_id[len(FIELD_PREFIX) :].partition(":")
        if not sep or not entry_id or not key:
            return None
        return ("field", entry_id, key)
    return None


def _target_exists(section: SectionState, target: Tuple[str, ...]) -> bool:
    if target[0] == "bullet":
        return section.find_bullet(target[1]) is not None
    entry = section.find_entry(target[1])
    return entry is not None and target[2] in entry.fields


def apply_review_actions(section: SectionState, actions: List[ReviewAction]) -> Tuple[SectionState, int, int]:
    """
    Applies a batch of review actions in order.
    Returns (new_section, applied, skipped); actions on unknown targets,
    and EDIT actions without text, are skipped.
    """
    applied = 0
    skipped = 0

    for act in actions:
        target = parse_target_id(act.target_id)
        if target is None or not _target_exists(section, target):
            logger.warning("Skipping review action", target_id=act.target_id, action=act.action.value)
            skipped += 1
            continue

        is_bullet = target[0] == "bullet"
        if act.action == ReviewActionType.ACCEPT:
            section = accept_bullet(section, target[1]) if is_bullet else accept_field(section, *target[1:])
        elif act.action == ReviewActionType.REJECT:
            section = reject_bullet(section, target[1]) if is_bullet else reject_field(section, *target[1:])
        elif act.action == ReviewActionType.EDIT:
            if act.text is None:
                logger.warning("Skipping EDIT without text", target_id=act.target_id)
                skipped += 1
                continue
            if is_bullet:
                section = update_bullet(section, target[1], act.text)
            else:
                section = update_field(section, target[1], target[2], act.text)

        applied += 1

    return section, applied, skipped
