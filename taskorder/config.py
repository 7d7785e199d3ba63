import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ('1', 'true', 'yes', 'on'):
        return True
    if value in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class Settings:
    store_path: Path = Path(".taskorder.yaml")
    log_file: Optional[str] = "taskorder.log"
    missing_dependencies_block: bool = True
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Read TASKORDER_* variables, falling back to local defaults."""
        log_file = os.getenv("TASKORDER_LOG_FILE", "taskorder.log")
        return cls(
            store_path=Path(os.getenv("TASKORDER_STORE", ".taskorder.yaml")),
            log_file=log_file or None,
            missing_dependencies_block=_env_bool("TASKORDER_MISSING_DEPS_BLOCK", default=True),
            verbose=_env_bool("TASKORDER_VERBOSE", default=False),
        )
