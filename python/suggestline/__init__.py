from importlib.metadata import PackageNotFoundError, version

from suggestline.diff import word_diff
from suggestline.ingest import parse_tailoring
from suggestline.markup import normalize
from suggestline.models import BulletState, DiffToken, EntryState, FieldState, SectionState
from suggestline.reconcile.session import ReviewSession
from suggestline.serialize import serialize_section

try:
    __version__ = version("suggestline")
except PackageNotFoundError:
    # Running from a source checkout without an install.
    __version__ = "0.0.0-dev"

__all__ = [
    "BulletState",
    "DiffToken",
    "EntryState",
    "FieldState",
    "ReviewSession",
    "SectionState",
    "normalize",
    "parse_tailoring",
    "serialize_section",
    "word_diff",
    "__version__",
]
