from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

import yaml

from .config import HelperConfig, SessionOptions, load_config
from .context import SessionContext
from .errors import FatalError
from .lib.depends import check_dependencies
from .logging_utils import configure_logging
from .prompts import InquirerPrompter, Prompter
from .session import SessionResult, run_session
from .steps import (
    AutoMountStep,
    ChrootStep,
    InteractiveMountStep,
    MountRootStep,
    ResolveRootStep,
    SelectRootStep,
)

logger = logging.getLogger(__name__)


def build_steps():
    return [
        SelectRootStep(),
        ResolveRootStep(),
        MountRootStep(),
        AutoMountStep(),
        InteractiveMountStep(),
        ChrootStep(),
    ]


def build_options(config: HelperConfig, args: argparse.Namespace) -> SessionOptions:
    """Merge the config file with command line flags; flags win."""

    return SessionOptions(
        root_reference=args.root or config.root,
        show_btrfs_dot_snapshots=args.show_btrfs_dot_snapshots or config.show_btrfs_dot_snapshots,
        auto_mount=config.auto_mount and not args.no_auto_mount,
        systemd_chroot=config.systemd_chroot and not args.no_systemd_chroot,
    )


def run(
    *,
    options: SessionOptions,
    prompter: Prompter,
    skip_root_check: bool = False,
) -> SessionResult:
    """Assemble the root tree, chroot into it and clean up afterwards."""

    if not skip_root_check and os.geteuid() != 0:
        raise FatalError("This program must be run as root, to skip this check use --skip-root-check")

    ctx = SessionContext(options=options, prompter=prompter, features=check_dependencies())
    return run_session(ctx=ctx, steps=build_steps())


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="chroot-helper", description="Mount a system and chroot into it")
    p.add_argument("--config", default=None, help="Path to YAML config (default /etc/chroot-helper.yaml)")
    p.add_argument("--log", default=None, help="Path to log file")
    p.add_argument("--root", default=None, help="Root device reference (UUID=..., LABEL=..., /dev/...)")
    p.add_argument("--skip-root-check", action="store_true", help="Allow running without root permissions")
    p.add_argument(
        "--show-btrfs-dot-snapshots", action="store_true", help="Show .snapshots subvolumes for BTRFS partitions"
    )
    p.add_argument(
        "--no-auto-mount", action="store_true", help="Do not mount entries from /etc/fstab after root is mounted"
    )
    p.add_argument(
        "--no-systemd-chroot",
        action="store_true",
        help="Do not run the chroot in a transient systemd instance (arch-chroot -S)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")

    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        configure_logging(log_path=None)
        logger.error("Unable to load config %s: %s", args.config, e)
        return 1

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    configure_logging(log_path=args.log or config.log_path, level=level)

    try:
        run(
            options=build_options(config, args),
            prompter=InquirerPrompter(),
            skip_root_check=args.skip_root_check,
        )
    except FatalError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("Aborted by user")
        return 130
    return 0
