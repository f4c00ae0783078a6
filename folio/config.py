"""Engine configuration.

Thresholds are injected into the detectors rather than read from module
constants, so tests can exercise boundary values directly.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from folio.models.enums import CostBasisMethod

DEFAULT_DB_PATH = Path.home() / ".folio" / "folio.db"


class EngineSettings(BaseModel):
    duplicate_threshold: int = Field(default=80, ge=0, le=100)
    duplicate_window_days: int = Field(default=3, ge=0)
    wash_sale_window_days: int = Field(default=30, ge=0)
    long_term_days: int = Field(default=365, ge=0)
    default_method: CostBasisMethod = CostBasisMethod.FIFO
    db_path: Path = DEFAULT_DB_PATH

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineSettings":
        """Build settings from FOLIO_* environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        mapping = {
            "FOLIO_DUPLICATE_THRESHOLD": "duplicate_threshold",
            "FOLIO_DUPLICATE_WINDOW_DAYS": "duplicate_window_days",
            "FOLIO_WASH_SALE_WINDOW_DAYS": "wash_sale_window_days",
            "FOLIO_LONG_TERM_DAYS": "long_term_days",
            "FOLIO_DB": "db_path",
        }
        for var, field in mapping.items():
            if env.get(var):
                overrides[field] = env[var]
        if env.get("FOLIO_DEFAULT_METHOD"):
            overrides["default_method"] = CostBasisMethod.parse(env["FOLIO_DEFAULT_METHOD"])
        return cls(**overrides)
