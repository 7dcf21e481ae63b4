"""Configuration loading from environment variables and vaultmem.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_VAULT_ROOT = Path.home() / ".vaultmem" / "vault"
_CONFIG_FILENAME = "vaultmem.toml"

CAPTURE_MODES = ("conservative", "everything", "hybrid")
AUTO_PROMOTE_MODES = ("off", "safe")


@dataclass
class RetentionConfig:
    """Limits for derived logs."""

    retention_days: int = 30
    manifest_max_files: int = 60
    promotion_ledger_max_bytes: int = 524_288


@dataclass
class SchedulerConfig:
    """Scheduler configuration."""

    maintenance_cron: str = "0 3 * * *"
    tick_interval: int = 300


@dataclass
class VaultConfig:
    """Top-level vaultmem configuration."""

    vault_root: Path = _DEFAULT_VAULT_ROOT
    max_inject_chars: int = 2500
    auto_capture: bool = False
    capture_mode: str = "conservative"
    auto_promote: str = "off"
    inbox_retention_days: int = 30
    capture_cooldown_seconds: int = 30
    recall_keywords: list[str] = field(default_factory=list)
    emit_manifest: bool = True
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log_level: str = "INFO"


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def _bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _choice(value: object, allowed: tuple[str, ...], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def load_config(config_path: Path | None = None) -> VaultConfig:
    """Load configuration from environment variables and optional vaultmem.toml.

    Priority: environment variables > vaultmem.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.vaultmem/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".vaultmem" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    retention_data = file_data.get("retention", {})
    scheduler_data = file_data.get("scheduler", {})

    config = VaultConfig(
        vault_root=Path(
            os.getenv("VAULTMEM_ROOT", file_data.get("vault_root", str(_DEFAULT_VAULT_ROOT)))
        ).expanduser(),
        max_inject_chars=_clamp(
            int(os.getenv("VAULTMEM_MAX_INJECT_CHARS", file_data.get("max_inject_chars", 2500))),
            500,
            20_000,
        ),
        auto_capture=_bool(os.getenv("VAULTMEM_AUTO_CAPTURE", file_data.get("auto_capture", False))),
        capture_mode=_choice(
            os.getenv("VAULTMEM_CAPTURE_MODE", file_data.get("capture_mode")),
            CAPTURE_MODES,
            "conservative",
        ),
        auto_promote=_choice(
            os.getenv("VAULTMEM_AUTO_PROMOTE", file_data.get("auto_promote")),
            AUTO_PROMOTE_MODES,
            "off",
        ),
        inbox_retention_days=_clamp(int(file_data.get("inbox_retention_days", 30)), 1, 365),
        capture_cooldown_seconds=_clamp(int(file_data.get("capture_cooldown_seconds", 30)), 0, 3600),
        recall_keywords=[str(k) for k in file_data.get("recall_keywords", [])],
        emit_manifest=_bool(file_data.get("emit_manifest", True)),
        retention=RetentionConfig(
            retention_days=max(1, int(retention_data.get("retention_days", 30))),
            manifest_max_files=max(1, int(retention_data.get("manifest_max_files", 60))),
            promotion_ledger_max_bytes=max(
                1024, int(retention_data.get("promotion_ledger_max_bytes", 524_288))
            ),
        ),
        scheduler=SchedulerConfig(
            maintenance_cron=scheduler_data.get("maintenance_cron", "0 3 * * *"),
            tick_interval=int(
                os.getenv("VAULTMEM_TICK_INTERVAL", scheduler_data.get("tick_interval", 300))
            ),
        ),
        log_level=os.getenv("VAULTMEM_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
