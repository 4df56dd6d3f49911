import json
import logging
import sys
import time
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from suggestline.config import ReconcileSettings
from suggestline.diff import word_diff
from suggestline.ingest import parse_tailoring
from suggestline.markup import render_critic_markup
from suggestline.models import ReviewAction, SectionState
from suggestline.reconcile.merge import apply_saved_finals, rebuild_after_fetch
from suggestline.reconcile.operations import apply_review_actions
from suggestline.serialize import dump_records, serialize_section

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Suggestline Review Service")
settings = ReconcileSettings.from_env()


def _load(payload_json: str, saved_json: Optional[str]) -> SectionState:
    section = parse_tailoring(payload_json)
    if section is None:
        raise ValueError("payload is not a recognised tailoring section")
    if saved_json:
        section = apply_saved_finals(section, json.loads(saved_json))
    return section


@mcp.tool()
def diff_text(original: str, suggested: str, as_json: bool = False) -> str:
    """
    Word-diffs an original resume line against a suggested rewrite.

    Args:
        original: The user's source text.
        suggested: The proposed replacement.
        as_json: If True, returns the raw token list ({kind, text}) as JSON.
                 If False (default), returns CriticMarkup: {--deleted--}{++inserted++}.
                 A full rewrite is returned as two lines.
    """
    tokens = word_diff(original, suggested, settings)
    if as_json:
        return json.dumps([t.model_dump(mode="json") for t in tokens])
    return render_critic_markup(tokens)


@mcp.tool()
def parse_section(payload_json: str, saved_json: Optional[str] = None) -> str:
    """
    Parses a tailoring payload into canonical review state.

    Args:
        payload_json: {sectionName, type, entries: [...]} as JSON text.
        saved_json: Optional JSON list of previously saved entry records to re-apply.
    """
    try:
        section = _load(payload_json, saved_json)
        return json.dumps(section.model_dump(mode="json"))
    except Exception as e:
        return f"Error parsing section: {str(e)}"


@mcp.tool()
def review_section(
    payload_json: str,
    actions: List[ReviewAction],
    saved_json: Optional[str] = None,
) -> str:
    """
    Applies ACCEPT / REJECT / EDIT actions to a section and returns the
    entry records to persist.

    Args:
        payload_json: The tailoring payload as JSON text.
        actions: Review actions. Target ids are 'Bul:<bulletId>' or 'Fld:<entryId>:<fieldKey>'.
        saved_json: Optional JSON list of previously saved records, applied before the actions.
    """
    try:
        section = _load(payload_json, saved_json)
        section, applied, skipped = apply_review_actions(section, actions)
        records = dump_records(serialize_section(section))
        return json.dumps({"applied": applied, "skipped": skipped, "records": records})
    except Exception as e:
        return f"Error reviewing section: {str(e)}"


@mcp.tool()
def reload_section(
    payload_json: str,
    previous_state_json: str,
    saved_json: Optional[str] = None,
    regenerated_bullet_ids: Optional[List[str]] = None,
) -> str:
    """
    Rebuilds review state after a fetch without losing regenerations that
    were applied locally but not yet saved.

    Args:
        payload_json: Freshly fetched tailoring payload as JSON text.
        previous_state_json: The state previously returned by parse_section / reload_section.
        saved_json: Optional JSON list of saved entry records.
        regenerated_bullet_ids: Bullets regenerated since the last save.
    """
    try:
        fresh = parse_tailoring(payload_json)
        if fresh is None:
            return "Error: payload is not a recognised tailoring section"
        previous = SectionState.model_validate_json(previous_state_json)
        now = time.monotonic()
        markers = {bullet_id: now + settings.regeneration_marker_ttl for bullet_id in regenerated_bullet_ids or []}
        saved = json.loads(saved_json) if saved_json else None
        section = rebuild_after_fetch(fresh, previous, saved, markers, now=now)
        return json.dumps(section.model_dump(mode="json"))
    except Exception as e:
        return f"Error reloading section: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
