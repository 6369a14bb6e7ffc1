from __future__ import annotations

import enum
import logging
import shutil
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..errors import FatalError

logger = logging.getLogger(__name__)


class Features(enum.Flag):
    NONE = 0
    BTRFS = enum.auto()
    LUKS = enum.auto()
    ZFS = enum.auto()


@dataclass(frozen=True)
class Dependency:
    command: str
    package: str
    required: bool = True
    description: str = ""
    feature: Features = Features.NONE


DEPENDENCIES: Tuple[Dependency, ...] = (
    Dependency("lsblk", "util-linux"),
    Dependency("mount", "util-linux"),
    Dependency("umount", "util-linux"),
    Dependency("arch-chroot", "arch-install-scripts"),
    Dependency("btrfs", "btrfs-progs", False, "BTRFS Support", Features.BTRFS),
    Dependency("cryptsetup", "cryptsetup", False, "LUKS Support", Features.LUKS),
    Dependency("zfs", "zfs-utils", False, "ZFS Support", Features.ZFS),
    Dependency("zpool", "zfs-utils", False, "ZFS Support", Features.ZFS),
)

ALL_FEATURES = Features.BTRFS | Features.LUKS | Features.ZFS


def check_dependencies(
    dependencies: Tuple[Dependency, ...] = DEPENDENCIES,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Features:
    """Return the optional features whose tools are all installed.

    A missing required command is fatal.
    """

    features = ALL_FEATURES
    for dep in dependencies:
        if which(dep.command):
            continue
        if dep.required:
            raise FatalError(f"Command {dep.command} not found, please install {dep.package}")
        if dep.feature in features:
            logger.warning(
                "Command %s not found, %s will be disabled. Install %s to enable it.",
                dep.command,
                dep.description,
                dep.package,
            )
        features &= ~dep.feature
    return features


def feature_for(fstype: str) -> Features:
    return {
        "btrfs": Features.BTRFS,
        "crypto_luks": Features.LUKS,
        "zfs_member": Features.ZFS,
        "zfs": Features.ZFS,
    }.get(fstype.lower(), Features.NONE)
