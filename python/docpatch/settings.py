import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "DOCPATCH_"


class PatchSettings(BaseModel):
    """Tunables shared by the locator and the section rewriter."""

    context_window: int = Field(
        80,
        ge=1,
        description="Characters before/after a match searched for contextBefore/contextAfter.",
    )
    diff_timeout: float = Field(
        0.0,
        ge=0.0,
        description="diff-match-patch timeout in seconds. 0 disables the timeout so diffs are deterministic.",
    )
    diff_edit_cost: int = Field(4, ge=1, description="diff-match-patch Diff_EditCost.")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PatchSettings":
        """Builds settings from DOCPATCH_* variables, falling back to defaults."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        return cls.model_validate(values)


DEFAULT_SETTINGS = PatchSettings()
