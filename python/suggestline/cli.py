import argparse
import json
import sys
from pathlib import Path
from typing import Any, List

from suggestline import __version__
from suggestline.config import ReconcileSettings
from suggestline.diff import word_diff
from suggestline.ingest import parse_tailoring, visible_bullets, visible_fields
from suggestline.markup import render_critic_markup
from suggestline.models import DISPLAY, ReviewAction, SectionState, resolve_value
from suggestline.reconcile.merge import apply_saved_finals
from suggestline.reconcile.operations import apply_review_actions
from suggestline.serialize import dump_records, serialize_section


def _read_json(path: Path) -> Any:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error parsing JSON in {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _read_text_arg(value: str) -> str:
    """'@path' reads the text from a file, anything else is literal text."""
    if value.startswith("@"):
        path = Path(value[1:])
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            sys.exit(1)
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    return value


def _settings_from_args(args: argparse.Namespace) -> ReconcileSettings:
    settings = ReconcileSettings.from_env()
    overrides = {}
    if getattr(args, "threshold", None) is not None:
        overrides["rewrite_threshold"] = args.threshold
    if getattr(args, "lookahead", None) is not None:
        overrides["lookahead"] = args.lookahead
    if overrides:
        settings = ReconcileSettings.model_validate({**settings.model_dump(), **overrides})
    return settings


def _load_section(args: argparse.Namespace) -> SectionState:
    section = parse_tailoring(_read_json(args.payload))
    if section is None:
        print("Error: Payload is not a recognised tailoring section.", file=sys.stderr)
        sys.exit(1)
    if getattr(args, "saved", None):
        section = apply_saved_finals(section, _read_json(args.saved))
    return section


def _load_actions(path: Path) -> List[ReviewAction]:
    data = _read_json(path)
    if not isinstance(data, list):
        print("Error: Actions file must contain a JSON list.", file=sys.stderr)
        sys.exit(1)
    try:
        return [ReviewAction.model_validate(item) for item in data]
    except ValueError as e:
        print(f"Error parsing review actions: {e}", file=sys.stderr)
        sys.exit(1)


def _write_output(text: str, output: Path = None):
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"✅ Saved to {output}", file=sys.stderr)
    else:
        print(text)


def handle_diff(args):
    original = _read_text_arg(args.original)
    suggested = _read_text_arg(args.suggested)
    tokens = word_diff(original, suggested, _settings_from_args(args))

    if args.json:
        print(json.dumps([t.model_dump(mode="json") for t in tokens], indent=2))
    else:
        print(render_critic_markup(tokens))


def handle_parse(args):
    section = _load_section(args)
    _write_output(json.dumps(section.model_dump(mode="json"), indent=2), args.output)


def handle_show(args):
    """Prints every visible field and bullet as a redline."""
    section = _load_section(args)
    settings = _settings_from_args(args)

    print(f"# {section.heading or section.kind.value}")
    for entry in section.entries:
        print(f"\n## {entry.id}")
        for field in visible_fields(entry):
            shown = resolve_value(field, DISPLAY) or ""
            print(f"{field.key}: {render_critic_markup(word_diff(field.original, shown, settings))}")
        for bullet in visible_bullets(entry):
            shown = resolve_value(bullet, DISPLAY) or ""
            print(f"- {render_critic_markup(word_diff(bullet.original, shown, settings))}")


def handle_review(args):
    section = _load_section(args)
    actions = _load_actions(args.actions)

    print(f"Applying {len(actions)} review actions...", file=sys.stderr)
    section, applied, skipped = apply_review_actions(section, actions)

    records = dump_records(serialize_section(section))
    _write_output(json.dumps(records, indent=2), args.output)

    print(f"Stats: {applied} applied, {skipped} skipped.", file=sys.stderr)
    if skipped > 0:
        sys.exit(1)


def _add_tuning_args(parser: argparse.ArgumentParser):
    parser.add_argument("--threshold", type=float, help="Similarity below which a suggestion is a full rewrite")
    parser.add_argument("--lookahead", type=int, help="Word alignment lookahead window")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="suggestline", description="Review AI suggestions on resume sections")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_diff = subparsers.add_parser("diff", help="Word-diff an original line against a suggestion")
    p_diff.add_argument("original", help="Original text, or @file")
    p_diff.add_argument("suggested", help="Suggested text, or @file")
    p_diff.add_argument("--json", action="store_true", help="Output raw JSON tokens")
    _add_tuning_args(p_diff)
    p_diff.set_defaults(func=handle_diff)

    p_parse = subparsers.add_parser("parse", help="Parse a tailoring payload into canonical state")
    p_parse.add_argument("payload", type=Path, help="Tailoring payload JSON")
    p_parse.add_argument("--saved", type=Path, help="Previously saved records JSON to re-apply")
    p_parse.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_parse.set_defaults(func=handle_parse)

    p_show = subparsers.add_parser("show", help="Print a section as CriticMarkup redlines")
    p_show.add_argument("payload", type=Path, help="Tailoring payload JSON")
    p_show.add_argument("--saved", type=Path, help="Previously saved records JSON to re-apply")
    _add_tuning_args(p_show)
    p_show.set_defaults(func=handle_show)

    p_review = subparsers.add_parser("review", help="Apply review actions and print the records to persist")
    p_review.add_argument("payload", type=Path, help="Tailoring payload JSON")
    p_review.add_argument("actions", type=Path, help="JSON list of review actions")
    p_review.add_argument("--saved", type=Path, help="Previously saved records JSON to re-apply first")
    p_review.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_review.set_defaults(func=handle_review)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
