# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_WORK_DIR = ".docsci/work"
DEFAULT_TOOLCACHE = ".docsci/toolcache"
DEFAULT_WORKFLOW = ".github/workflows/website.yml"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runner settings, read from DOCSCI_* environment variables."""
    work_dir: Path = Path(DEFAULT_WORK_DIR)
    toolcache: Path = Path(DEFAULT_TOOLCACHE)
    keep_workspace: bool = False
    max_workers: int | None = None
    webhook_secret: str | None = None
    workflow: str = DEFAULT_WORKFLOW

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        workers = env.get("DOCSCI_MAX_WORKERS")
        return cls(
            work_dir=Path(env.get("DOCSCI_WORK_DIR", DEFAULT_WORK_DIR)).expanduser(),
            toolcache=Path(env.get("DOCSCI_TOOLCACHE", DEFAULT_TOOLCACHE)).expanduser(),
            keep_workspace=_flag(env.get("DOCSCI_KEEP_WORKSPACE")),
            max_workers=int(workers) if workers else None,
            webhook_secret=env.get("DOCSCI_WEBHOOK_SECRET") or None,
            workflow=env.get("DOCSCI_WORKFLOW", DEFAULT_WORKFLOW),
        )

    def override(self, **changes) -> "Settings":
        """Return a copy with every non-None keyword applied (CLI options)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings) -> None:
    global _settings
    _settings = settings
