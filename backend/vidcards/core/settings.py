"""Runtime paths and static app settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

APP_VERSION = "0.1.0"
RUNTIME_ROOT_ENV = "VIDCARDS_RUNTIME_ROOT"


@dataclass(frozen=True)
class AppPaths:
    """Everything the service writes lives under `runtime_root`."""

    runtime_root: Path

    @property
    def jobs_root(self) -> Path:
        return self.runtime_root / "jobs"

    @property
    def config_path(self) -> Path:
        return self.runtime_root / "config.json"

    @property
    def db_path(self) -> Path:
        return self.runtime_root / "vidcards.sqlite3"

    @property
    def queue_path(self) -> Path:
        return self.runtime_root / "queue.sqlite"

    def ensure_dirs(self) -> None:
        self.jobs_root.mkdir(parents=True, exist_ok=True)


def _default_runtime_root() -> Path:
    # backend/vidcards/core/settings.py -> <repo>/runtime
    return Path(__file__).resolve().parents[3] / "runtime"


def build_paths(env: Optional[Mapping[str, str]] = None) -> AppPaths:
    env = os.environ if env is None else env
    override = env.get(RUNTIME_ROOT_ENV, "").strip()
    runtime_root = Path(override).expanduser().resolve() if override else _default_runtime_root()
    paths = AppPaths(runtime_root=runtime_root)
    paths.ensure_dirs()
    return paths


PATHS = build_paths()
