from suggestline.reconcile.merge import apply_saved_finals, merge_regenerated, rebuild_after_fetch
from suggestline.reconcile.operations import (
    accept_bullet,
    accept_field,
    apply_review_actions,
    reject_bullet,
    reject_field,
    update_bullet,
    update_bullet_suggestion,
    update_field,
)

__all__ = [
    "accept_bullet",
    "accept_field",
    "apply_review_actions",
    "apply_saved_finals",
    "merge_regenerated",
    "rebuild_after_fetch",
    "reject_bullet",
    "reject_field",
    "update_bullet",
    "update_bullet_suggestion",
    "update_field",
]
