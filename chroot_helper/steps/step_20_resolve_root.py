from __future__ import annotations

import logging
import tempfile

from ..context import SessionContext
from ..errors import FatalError
from ..lib.btrfs import resolve_subvolume
from ..lib.env import PATHS
from ..lib.zfs import import_pool
from ..planner import pool_datasets

logger = logging.getLogger(__name__)


class ResolveRootStep:
    step_id = "20_resolve_root"

    def run(self, ctx: SessionContext) -> None:
        device = ctx.root_device
        if device is None:
            raise FatalError("Root device has not been selected")

        ctx.root_mount_point = tempfile.mkdtemp(prefix=f"{PATHS.root_prefix}{device.identity()}-")

        if device.is_btrfs:
            logger.info("Selected BTRFS partition, mounting and listing subvolumes...")
            ctx.root_subvolume = resolve_subvolume(
                device,
                ctx.subvolume_cache,
                prompter=ctx.prompter,
                role="root",
                include_dot_snapshots=ctx.options.show_btrfs_dot_snapshots,
            )
        elif device.is_zfs_member:
            import_pool(device, ctx.root_mount_point, prompter=ctx.prompter)
            ctx.resources.imported_pools.append(device)
            datasets = pool_datasets(ctx, device)
            if not datasets:
                raise FatalError(f"No mountable ZFS datasets found in pool {device.identity()}")
            chosen = ctx.prompter.choose_datasets("root", datasets)
            if not chosen:
                raise FatalError("No ZFS datasets selected for root partition")
            ctx.root_datasets = list(chosen)
