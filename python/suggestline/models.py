from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SectionKind(str, Enum):
    SUMMARY = "summary"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    SKILLS = "skills"
    OTHER = "other"


class DiffKind(str, Enum):
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    INSERTED = "inserted"


class DiffToken(BaseModel):
    """One word (or whole block, for full rewrites) of a redline."""

    model_config = ConfigDict(frozen=True)

    kind: DiffKind
    text: str


class TextState(BaseModel):
    """
    The atomic reviewable unit.

    `final` is only set by an explicit accept or a manual edit, and the same
    step clears `suggested`. `original` never changes after parsing.
    """

    model_config = ConfigDict(frozen=True)

    original: str = ""
    suggested: Optional[str] = None
    final: Optional[str] = None


class BulletState(TextState):
    id: str


class FieldState(TextState):
    key: str


class EntryState(BaseModel):
    """
    One job / degree / skills block.

    `field_order` is kept next to `fields` so ordering never depends on
    dict iteration. It holds every key of `fields` exactly once.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    fields: Dict[str, FieldState] = Field(default_factory=dict)
    field_order: List[str] = Field(default_factory=list)
    bullets: List[BulletState] = Field(default_factory=list)

    def ordered_fields(self) -> List[FieldState]:
        return [self.fields[key] for key in self.field_order if key in self.fields]

    def find_bullet(self, bullet_id: str) -> Optional[BulletState]:
        for bullet in self.bullets:
            if bullet.id == bullet_id:
                return bullet
        return None


class SectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    heading: str = ""
    kind: SectionKind = SectionKind.OTHER
    entries: List[EntryState] = Field(default_factory=list)

    def find_entry(self, entry_id: str) -> Optional[EntryState]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def find_bullet(self, bullet_id: str) -> Optional[BulletState]:
        for entry in self.entries:
            bullet = entry.find_bullet(bullet_id)
            if bullet is not None:
                return bullet
        return None


# --- Persistence shape ---


class FieldRecord(BaseModel):
    key: str
    value: str


class EntryRecord(BaseModel):
    """One persisted entry, in the array format that keeps field order."""

    model_config = ConfigDict(populate_by_name=True)

    field_order: List[str] = Field(default_factory=list, alias="fieldOrder")
    fields: List[FieldRecord] = Field(default_factory=list)
    bullets: List[str] = Field(default_factory=list)


# --- Review actions ---


class ReviewActionType(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    EDIT = "EDIT"


class ReviewAction(BaseModel):
    """
    A user decision on one bullet or field.
    Target ids use a prefix: 'Bul:<bulletId>' or 'Fld:<entryId>:<fieldKey>'.
    """

    action: ReviewActionType = Field(..., description="ACCEPT, REJECT, or EDIT.")
    target_id: str = Field(..., description="'Bul:<bulletId>' or 'Fld:<entryId>:<fieldKey>'.")
    text: Optional[str] = Field(None, description="For EDIT: the hand-written replacement text.")


# --- Regeneration boundary ---


class RegenerationContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_name: str = Field("", alias="sectionName")
    bullet_text: str = Field("", alias="bulletText")
    original: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    other_bullets: List[str] = Field(default_factory=list, alias="otherBullets")


class RegenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bullet_id: str = Field(..., alias="bulletId")
    bullet_text: str = Field("", alias="bulletText")
    context: RegenerationContext


class RegenerationResponse(BaseModel):
    suggested: str


# --- Value resolution ---

# Precedence chains. Bullets never persist a pending suggestion.
PERSIST_FIELD = ("final", "suggested", "original")
PERSIST_BULLET = ("final", "original")
DISPLAY = ("suggested", "final", "original")


def resolve_value(state: TextState, precedence=PERSIST_FIELD) -> Optional[str]:
    """Returns the first attribute in `precedence` that is not None."""
    for attr in precedence:
        value = getattr(state, attr)
        if value is not None:
            return value
    return None
