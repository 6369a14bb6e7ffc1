from __future__ import annotations

import logging

from ..context import SessionContext
from ..lib.block import mount_block_device
from ..lib.zfs import mount_dataset
from ..planner import mount_order

logger = logging.getLogger(__name__)


class MountRootStep:
    step_id = "30_mount_root"

    def run(self, ctx: SessionContext) -> None:
        device = ctx.root_device
        root = ctx.root_mount_point

        if ctx.root_datasets:
            for dataset in sorted(ctx.root_datasets, key=mount_order):
                target = root if dataset.is_legacy else ctx.target_path(dataset.mountpoint)
                mount_dataset(dataset, target, prompter=ctx.prompter, gracefully_fail=False)
                ctx.root_mounted = True
                ctx.mounted.add(dataset.identity())
                ctx.resources.mounted_datasets.append(dataset)
            return

        subvolume = ctx.root_subvolume
        options = subvolume.mount_options() if subvolume else []
        mount_block_device(device, root, prompter=ctx.prompter, gracefully_fail=False, options=options)
        ctx.root_mounted = True
        ctx.mounted.add(subvolume.identity() if subvolume else device.identity())
