"""Load, validate, and hot-reload the sync engine configuration.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk; no restart required.

Usage::

    from src.activity_sync.config_loader import get_sync_config

    config = get_sync_config()
    interval = config.background.minimum_interval_seconds   # 900
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("fitglue.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class BackgroundConfig:
    """Background trigger registration settings."""

    minimum_interval_seconds: int = 900
    stop_on_terminate: bool = False
    start_on_boot: bool = True


@dataclass
class EngineConfig:
    """Orchestrator behavior switches."""

    device_lookback_days: int = 30
    freeze_watermark_on_source_failure: bool = False


@dataclass
class BackendConfig:
    """Backend endpoint paths, relative to the API base URL."""

    sync_path: str = "/api/mobile/sync"
    synced_ids_path: str = "/api/mobile/sync/synced-ids"


@dataclass
class HealthSourcesConfig:
    """Platform permission sets requested at initialization."""

    healthkit_read_permissions: list[str] = field(default_factory=list)
    health_connect_required_permissions: list[str] = field(default_factory=list)


@dataclass
class SyncConfig:
    """Complete, validated engine configuration.

    Attributes:
        version:        Config schema version string.
        background:     Background trigger settings.
        sync:           Orchestrator switches.
        backend:        Backend endpoint paths.
        health_sources: Platform permission sets.
    """

    version: str
    background: BackgroundConfig
    sync: EngineConfig
    backend: BackendConfig
    health_sources: HealthSourcesConfig


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Applies defaults for optional fields and collects every error before
    raising, so one run reports everything that is wrong with the file.
    """
    errors: list[str] = []

    def _section(name: str) -> dict:
        value = raw.get(name) or {}
        if not isinstance(value, dict):
            errors.append(f"'{name}' must be a mapping")
            return {}
        return value

    def _int(section: dict, key: str, default: int, name: str, minimum: int = 0) -> int:
        value = section.get(key, default)
        try:
            result = int(value)
        except (TypeError, ValueError):
            errors.append(f"{name}.{key} must be an integer, got {value!r}")
            return default
        if result < minimum:
            errors.append(f"{name}.{key} = {result} must be >= {minimum}")
        return result

    def _path(section: dict, key: str, default: str, name: str) -> str:
        value = section.get(key, default)
        if not isinstance(value, str) or not value.startswith("/"):
            errors.append(f"{name}.{key} must be an absolute path, got {value!r}")
            return default
        return value

    version = str(raw.get("version", "1.0"))

    # ── Background ──
    bg_raw = _section("background")
    background = BackgroundConfig(
        minimum_interval_seconds=_int(bg_raw, "minimum_interval_seconds", 900, "background", 1),
        stop_on_terminate=bool(bg_raw.get("stop_on_terminate", False)),
        start_on_boot=bool(bg_raw.get("start_on_boot", True)),
    )

    # ── Sync ──
    sync_raw = _section("sync")
    engine = EngineConfig(
        device_lookback_days=_int(sync_raw, "device_lookback_days", 30, "sync", 1),
        freeze_watermark_on_source_failure=bool(
            sync_raw.get("freeze_watermark_on_source_failure", False)
        ),
    )

    # ── Backend ──
    be_raw = _section("backend")
    backend = BackendConfig(
        sync_path=_path(be_raw, "sync_path", "/api/mobile/sync", "backend"),
        synced_ids_path=_path(
            be_raw, "synced_ids_path", "/api/mobile/sync/synced-ids", "backend"
        ),
    )

    # ── Health sources ──
    hs_raw = _section("health_sources")
    hk_raw = hs_raw.get("healthkit") or {}
    hc_raw = hs_raw.get("health_connect") or {}
    health_sources = HealthSourcesConfig(
        healthkit_read_permissions=list(hk_raw.get("read_permissions", [])),
        health_connect_required_permissions=list(hc_raw.get("required_permissions", [])),
    )
    if not health_sources.health_connect_required_permissions:
        logger.warning(
            "No Health Connect permissions configured; ExerciseSession reads will fail"
        )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        background=background,
        sync=engine,
        backend=backend,
        health_sources=health_sources,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.

    Returns:
        Validated SyncConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the global SyncConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
