"""
Configuration loaders.

Engine settings come from <root>/specflow.yaml; feature records come from
features/<id>/meta.env.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import yaml

from . import envparse
from .constants import CONFIG_FILE, DEFAULT_ROOT, META_FILE, ROOT_ENV_VAR
from .fileio import atomic_write_text

logger = logging.getLogger(__name__)

VALID_STATUS_LEVELS = ("warn", "fail")

DEFAULT_PLAN_IGNORE_SECTIONS = [
    "Overview",
    "Summary",
    "Technical Context",
    "Open Questions",
    "Notes",
    "References",
    "Progress Tracking",
    "Constitution Check",
]


@dataclass
class EngineConfig:
    """Engine settings from specflow.yaml"""
    lock_timeout: float = 30.0  # Seconds to wait for a feature lock
    stale_lock_seconds: float = 900.0  # Locks older than this are reclaimed
    unmapped_task_status: str = "fail"  # Status for tasks referencing no requirement
    plan_section_levels: list[int] = field(default_factory=lambda: [2, 3])
    plan_ignore_sections: list[str] = field(default_factory=lambda: list(DEFAULT_PLAN_IGNORE_SECTIONS))
    constitution_check: bool = True


@dataclass
class FeatureRecord:
    """Feature metadata from meta.env"""
    id: str
    phase: str
    created_at: str
    updated_at: str
    previous_phase: str | None
    dir: Path


def resolve_root(explicit: str | None = None) -> Path:
    """Engine root: explicit value, then $SPECFLOW_ROOT, then ./.specflow"""
    if explicit:
        return Path(explicit)
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return Path(env_root)
    return Path.cwd() / DEFAULT_ROOT


def load_engine_config(root: Path | None) -> EngineConfig:
    """Load specflow.yaml and return EngineConfig.

    If root is None or the file doesn't exist, returns defaults. A malformed
    file is logged and ignored.
    """
    if root is None:
        return EngineConfig()

    config_path = root / CONFIG_FILE
    if not config_path.exists():
        return EngineConfig()

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return EngineConfig()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring {config_path}: expected a mapping")
        return EngineConfig()

    config = EngineConfig()
    try:
        if "lock_timeout" in data:
            config.lock_timeout = float(data["lock_timeout"])
        if "stale_lock_seconds" in data:
            config.stale_lock_seconds = float(data["stale_lock_seconds"])
        if "plan_section_levels" in data:
            config.plan_section_levels = [int(level) for level in data["plan_section_levels"]]
        if "plan_ignore_sections" in data:
            config.plan_ignore_sections = [str(s) for s in data["plan_ignore_sections"]]
        if "constitution_check" in data:
            config.constitution_check = bool(data["constitution_check"])
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid value in {config_path}: {e}; using defaults")
        return EngineConfig()

    status = str(data.get("unmapped_task_status", config.unmapped_task_status)).lower()
    if status not in VALID_STATUS_LEVELS:
        logger.warning(f"Unknown unmapped_task_status '{status}', defaulting to 'fail'")
        status = "fail"
    config.unmapped_task_status = status

    return config


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def load_feature(feature_dir: Path) -> FeatureRecord:
    """Load meta.env and return FeatureRecord."""
    env = envparse.load_env(feature_dir / META_FILE)
    return FeatureRecord(
        id=env["ID"],
        phase=env.get("PHASE", "specify"),
        created_at=env.get("CREATED_AT", ""),
        updated_at=env.get("UPDATED_AT", env.get("CREATED_AT", "")),
        previous_phase=env.get("PREVIOUS_PHASE") or None,
        dir=feature_dir,
    )


def write_feature_meta(feature_dir: Path, values: dict[str, str | None]) -> None:
    """Write a fresh meta.env."""
    atomic_write_text(feature_dir / META_FILE, envparse.format_env(values))


def update_feature_meta(feature_dir: Path, updates: dict[str, str | None]) -> None:
    """Merge updates into meta.env. None removes a key.

    Raises:
        FileNotFoundError: if meta.env is missing
    """
    env: dict[str, str | None] = dict(envparse.load_env(feature_dir / META_FILE))
    env.update(updates)
    env["UPDATED_AT"] = now_iso()
    write_feature_meta(feature_dir, env)
