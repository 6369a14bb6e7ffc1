from __future__ import annotations

import logging
from pathlib import Path

from ..context import SessionContext
from ..lib.env import PATHS
from ..lib.fstab import parse_fstab
from ..lib.luks import load_key_aliases
from ..planner import auto_mount

logger = logging.getLogger(__name__)


class AutoMountStep:
    step_id = "40_auto_mount"

    def run(self, ctx: SessionContext) -> None:
        root = Path(ctx.root_mount_point)
        entries = parse_fstab(root / PATHS.fstab_rel)

        if not ctx.options.auto_mount:
            logger.info("Automatic mounting from /etc/fstab is disabled")
            return

        ctx.key_aliases = load_key_aliases(root / PATHS.crypttab_rel, ctx.root_is_encrypted)
        mounted = auto_mount(ctx, entries)
        logger.info("Mounted %d entries from /etc/fstab", len(mounted))
