import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "SUGGESTLINE_"


class ReconcileSettings(BaseModel):
    """Tunables shared by the diff engine and the review session."""

    rewrite_threshold: float = Field(
        0.6,
        ge=0.0,
        le=1.0,
        description="Word-set similarity below which a suggestion is shown as a full rewrite.",
    )
    lookahead: int = Field(5, ge=1, description="Window used by the greedy word alignment.")
    save_delay: float = Field(3.0, ge=0.0, description="Seconds of quiet before a debounced save fires.")
    regeneration_marker_ttl: float = Field(
        1.0,
        ge=0.0,
        description="Seconds a regenerated bullet is protected from being reverted by a reload.",
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReconcileSettings":
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        return cls.model_validate(values)


DEFAULT_SETTINGS = ReconcileSettings()
