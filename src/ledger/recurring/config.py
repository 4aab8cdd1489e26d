from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class RecurringConfig(BaseModel):
    projection_years: int = Field(default=50, ge=1, le=200)
    default_per_page: int = Field(default=20, ge=1)
    max_per_page: int = Field(default=100, ge=1)
    audit_actor: str = "cli"


def _candidate_paths() -> list[Path]:
    paths = [Path("recurring.yaml")]
    home = Path(os.path.expanduser("~"))
    paths.append(home / ".ledger" / "recurring.yaml")
    return paths


def load_recurring_config(path: Optional[Path] = None) -> tuple[RecurringConfig, Optional[str]]:
    candidates = [path] if path is not None else _candidate_paths()
    for p in candidates:
        if p.exists():
            data = yaml.safe_load(p.read_text()) or {}
            return RecurringConfig.model_validate(data.get("recurring") or data), str(p)
    return RecurringConfig(), None
