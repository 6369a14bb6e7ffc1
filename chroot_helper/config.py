from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .lib.env import PATHS


@dataclass(frozen=True)
class HelperConfig:
    raw: Dict[str, Any]

    @property
    def root(self) -> Optional[str]:
        value = self.raw.get("root")
        return str(value) if value else None

    @property
    def show_btrfs_dot_snapshots(self) -> bool:
        return bool((self.raw.get("btrfs") or {}).get("show_dot_snapshots", False))

    @property
    def auto_mount(self) -> bool:
        return bool((self.raw.get("mount") or {}).get("auto_mount", True))

    @property
    def systemd_chroot(self) -> bool:
        return bool((self.raw.get("chroot") or {}).get("systemd", True))

    @property
    def log_path(self) -> str:
        return str(((self.raw.get("logging") or {}).get("path")) or PATHS.log_default)

    @property
    def log_level(self) -> str:
        return str(((self.raw.get("logging") or {}).get("level")) or "INFO").upper()


@dataclass(frozen=True)
class SessionOptions:
    """Effective settings for one session (config file merged with CLI flags)."""

    root_reference: Optional[str] = None
    show_btrfs_dot_snapshots: bool = False
    auto_mount: bool = True
    systemd_chroot: bool = True


def load_config(path: Optional[str] = None) -> HelperConfig:
    """Load the YAML config.

    Without ``path`` the default location is tried and may be absent; an
    explicitly requested file must exist.
    """

    p = Path(path or PATHS.config_default)
    if not p.exists():
        if path:
            raise FileNotFoundError(path)
        return HelperConfig(raw={})

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{p} must contain a mapping/object")

    return HelperConfig(raw=raw)
