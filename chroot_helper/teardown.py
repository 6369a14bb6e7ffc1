"""Release session resources in dependency order.

1. unmount the root tree
2. close LUKS volumes
3. unload ZFS keys
4. export ZFS pools

Every phase runs even if an earlier one failed; failures are logged for
manual follow-up.
"""
from __future__ import annotations

import logging
import os

from .context import SessionContext
from .lib.block import umount_block_device
from .lib.luks import close_device
from .lib.zfs import export_pool, unload_key, unmount_dataset

logger = logging.getLogger(__name__)


def unmount_root_tree(ctx: SessionContext) -> bool:
    if not ctx.root_mount_point or not ctx.root_mounted:
        return True

    datasets = ctx.resources.mounted_datasets
    if umount_block_device(ctx.root_mount_point, recursive=True):
        for dataset in datasets:
            dataset.mark_as_unmounted()
        # Everything this session mounted lives below the root.
        ctx.mounted.clear()
        ctx.root_mounted = False
        return True

    # Recursive unmount failed; try the datasets one by one, children first.
    for dataset in reversed(datasets):
        if dataset.is_mounted() and unmount_dataset(dataset):
            ctx.mounted.discard(dataset.identity())
    return False


def _remove_root_mount_point(ctx: SessionContext) -> None:
    if not ctx.root_mount_point or ctx.root_mounted:
        return
    try:
        os.rmdir(ctx.root_mount_point)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Leaving mount point %s in place: %s", ctx.root_mount_point, e)


def teardown(ctx: SessionContext) -> None:
    res = ctx.resources
    if not (ctx.root_mounted or res.luks_devices or res.loaded_keys or res.imported_pools):
        _remove_root_mount_point(ctx)
        return

    logger.info("Cleaning up mounted partitions and opened devices...")
    unmount_root_tree(ctx)

    for device in reversed(res.luks_devices):
        close_device(device)
    res.luks_devices.clear()

    for name in reversed(res.loaded_keys):
        unload_key(name)
    res.loaded_keys.clear()

    for pool in reversed(res.imported_pools):
        export_pool(pool, prompter=ctx.prompter)
    res.imported_pools.clear()

    _remove_root_mount_point(ctx)
