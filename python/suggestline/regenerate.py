"""
Boundary to the suggestion generator: builds the per-bullet request and
cleans up what comes back. The generator itself is supplied by the caller.
"""

import re
from typing import Optional, Protocol

from suggestline.models import (
    PERSIST_FIELD,
    RegenerationContext,
    RegenerationRequest,
    RegenerationResponse,
    SectionState,
    resolve_value,
)

_LEADING_MARKER = re.compile(r"^[•\-*]\s*")


class RegenerationError(RuntimeError):
    """A regeneration request failed; local state was not modified."""


class SuggestionSource(Protocol):
    async def regenerate(self, request: RegenerationRequest) -> RegenerationResponse: ...


def build_regeneration_request(section: SectionState, bullet_id: str) -> Optional[RegenerationRequest]:
    """
    Collects the context the generator needs for one bullet: section heading,
    the bullet's original text, the entry's metadata and the resolved text of
    its sibling bullets. Returns None when the bullet is unknown.
    """
    for entry in section.entries:
        bullet = entry.find_bullet(bullet_id)
        if bullet is None:
            continue

        metadata = {}
        for field in entry.ordered_fields():
            value = resolve_value(field, PERSIST_FIELD)
            if value:
                metadata[field.key] = value

        siblings = [resolve_value(b, PERSIST_FIELD) or "" for b in entry.bullets if b.id != bullet_id]

        context = RegenerationContext(
            section_name=section.heading,
            bullet_text=bullet.original,
            original=bullet.original,
            metadata=metadata,
            other_bullets=siblings,
        )
        return RegenerationRequest(bullet_id=bullet_id, bullet_text=bullet.original, context=context)

    return None


def clean_regenerated_text(text: str) -> str:
    """Drops surrounding quotes and a leading bullet marker the generator may add."""
    suggested = (text or "").strip()
    if len(suggested) >= 2 and suggested[0] == suggested[-1] and suggested[0] in ("'", '"'):
        suggested = suggested[1:-1]
    return _LEADING_MARKER.sub("", suggested)
