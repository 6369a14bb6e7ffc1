"""Resolve mount-table entries and ad-hoc selections into mounts.

Every mount performed here is recorded in ``ctx.mounted`` straight away,
which is what makes running the planner twice against the same table a
no-op the second time.
"""
from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Tuple

from .context import SessionContext
from .lib.block import BlockDevice, find_device, mount_block_device
from .lib.btrfs import ROOT_SUBVOLUME_ID, BtrfsSubvolume, find_subvolume, get_subvolumes, resolve_subvolume
from .lib.depends import Features, feature_for
from .lib.env import PATHS
from .lib.fstab import FstabEntry
from .lib.luks import mapped_path, open_device
from .lib.zfs import ZfsDataset, import_pool, list_mountable_datasets, mount_dataset

logger = logging.getLogger(__name__)

SKIPPED_FSTYPES = {"swap"}


def _alias_reference(ctx: SessionContext, spec: str) -> Optional[str]:
    names = [spec]
    mapper_prefix = PATHS.mapper_dir + "/"
    if spec.startswith(mapper_prefix):
        names.append(spec[len(mapper_prefix):])
    for name in names:
        ref = ctx.key_aliases.get(name)
        if ref:
            # crypttab references are stored without their UUID= prefix.
            if "=" in ref or ref.startswith("/"):
                return ref
            return f"UUID={ref}"
    return None


def unlock_container(ctx: SessionContext, device: BlockDevice) -> Optional[BlockDevice]:
    """Return the decrypted mapping of ``device``, opening it when needed."""

    if not ctx.has_feature(Features.LUKS):
        logger.error("LUKS support is not available, cannot open %s", device.name)
        return None
    if not ctx.resources.is_luks_open(device):
        if open_device(device, prompter=ctx.prompter, gracefully_fail=True) is None:
            return None
        ctx.resources.luks_devices.append(device)
        ctx.refresh_devices()

    path = mapped_path(device)
    for candidate in ctx.devices:
        if candidate.name == path:
            return candidate
    logger.warning("Decrypted mapping %s of %s has no usable filesystem", path, device.name)
    return None


def resolve_entry_device(ctx: SessionContext, entry: FstabEntry) -> Optional[BlockDevice]:
    device = None
    alias = _alias_reference(ctx, entry.spec)
    if alias is not None:
        device = find_device(ctx.devices, alias)
    if device is None:
        device = find_device(ctx.devices, entry.spec)
    if device is not None and device.is_crypto_luks:
        return unlock_container(ctx, device)
    return device


def select_entry_subvolume(
    ctx: SessionContext, device: BlockDevice, entry: FstabEntry
) -> Optional[BtrfsSubvolume]:
    subvolumes = get_subvolumes(
        device,
        ctx.subvolume_cache,
        prompter=ctx.prompter,
        include_dot_snapshots=ctx.options.show_btrfs_dot_snapshots,
    )

    subvolid = entry.option_value("subvolid")
    if subvolid is not None:
        try:
            found = find_subvolume(subvolumes, subvolume_id=int(subvolid))
        except ValueError:
            found = None
        if found is None:
            logger.warning("Subvolume id %s of %s not found, skipping...", subvolid, device.name)
        return found

    subvol = entry.option_value("subvol")
    if subvol is not None:
        found = find_subvolume(subvolumes, name=subvol)
        if found is None:
            logger.warning("Subvolume %s of %s not found, skipping...", subvol, device.name)
        return found

    logger.warning("No subvolume specified for %s, using root subvolume", entry.mountpoint)
    return find_subvolume(subvolumes, subvolume_id=ROOT_SUBVOLUME_ID)


def mount_order(dataset: ZfsDataset) -> Tuple[bool, int, str]:
    return (dataset.is_legacy, len(PurePosixPath(dataset.mountpoint).parts), dataset.mountpoint)


def pool_datasets(ctx: SessionContext, device: BlockDevice) -> List[ZfsDataset]:
    pool = device.identity()
    if pool not in ctx.pool_datasets:
        ctx.pool_datasets[pool] = list_mountable_datasets(
            pool, ctx.resources.loaded_keys, prompter=ctx.prompter
        )
    return ctx.pool_datasets[pool]


def mount_pool_datasets(
    ctx: SessionContext, device: BlockDevice, *, role: str, legacy_target: str, gracefully_fail: bool
) -> List[ZfsDataset]:
    """Import the pool behind ``device`` if needed and mount the datasets the user picks.

    Non-legacy datasets mount at their own mountpoint below the pool's
    altroot; legacy ones are mounted at ``legacy_target``.
    """

    if not ctx.resources.is_pool_imported(device):
        imported = import_pool(
            device, ctx.root_mount_point or "/", prompter=ctx.prompter, gracefully_fail=gracefully_fail
        )
        if not imported:
            return []
        ctx.resources.imported_pools.append(device)

    candidates = [d for d in pool_datasets(ctx, device) if d.identity() not in ctx.mounted]
    if not candidates:
        logger.warning("No mountable ZFS datasets left in pool %s", device.identity())
        return []

    mounted: List[ZfsDataset] = []
    for dataset in sorted(ctx.prompter.choose_datasets(role, candidates), key=mount_order):
        target = legacy_target if dataset.is_legacy else ctx.target_path(dataset.mountpoint)
        if mount_dataset(dataset, target, prompter=ctx.prompter, gracefully_fail=gracefully_fail):
            ctx.mounted.add(dataset.identity())
            ctx.resources.mounted_datasets.append(dataset)
            mounted.append(dataset)
    return mounted


def mount_additional(ctx: SessionContext, device: BlockDevice, mount_point: str) -> bool:
    """Mount a device picked by the user at ``mount_point`` inside the new root."""

    if device.is_crypto_luks:
        unlocked = unlock_container(ctx, device)
        if unlocked is None:
            return False
        device = unlocked

    if not ctx.has_feature(feature_for(device.fstype)):
        logger.error("Support for %s is not available, skipping %s", device.fstype, device.name)
        return False

    if device.identity() in ctx.mounted:
        logger.warning("Partition already mounted, skipping...")
        return False

    target = ctx.target_path(mount_point)
    if device.is_zfs_member:
        return bool(
            mount_pool_datasets(ctx, device, role=mount_point, legacy_target=target, gracefully_fail=True)
        )

    identity = device.identity()
    options: List[str] = []
    if device.is_btrfs:
        subvolume = resolve_subvolume(
            device,
            ctx.subvolume_cache,
            prompter=ctx.prompter,
            role=mount_point,
            include_dot_snapshots=ctx.options.show_btrfs_dot_snapshots,
        )
        identity = subvolume.identity()
        options = subvolume.mount_options()
        if identity in ctx.mounted:
            logger.warning("Partition already mounted, skipping...")
            return False

    if mount_block_device(device, target, prompter=ctx.prompter, gracefully_fail=True, options=options):
        ctx.mounted.add(identity)
        return True
    return False


def _mount_dataset_entry(ctx: SessionContext, entry: FstabEntry) -> Optional[str]:
    dataset = ctx.find_dataset(entry.spec)
    if dataset is None:
        logger.warning("Unable to find ZFS dataset %s for %s, skipping...", entry.spec, entry.mountpoint)
        return None
    if dataset.identity() in ctx.mounted:
        logger.warning("ZFS dataset %s already mounted, skipping...", dataset.name)
        return None
    target = ctx.target_path(entry.mountpoint)
    if mount_dataset(dataset, target, prompter=ctx.prompter, gracefully_fail=True):
        ctx.mounted.add(dataset.identity())
        ctx.resources.mounted_datasets.append(dataset)
        return dataset.identity()
    return None


def auto_mount(ctx: SessionContext, entries: Iterable[FstabEntry]) -> List[str]:
    """Mount every resolvable mount-table entry not yet mounted.

    Returns the identities mounted by this call.
    """

    mounted_now: List[str] = []
    for entry in entries:
        if entry.fstype in SKIPPED_FSTYPES:
            continue

        if entry.fstype == "zfs":
            identity = _mount_dataset_entry(ctx, entry)
            if identity is not None:
                mounted_now.append(identity)
            continue

        device = resolve_entry_device(ctx, entry)
        if device is None:
            logger.warning("Unable to find block device for %s (%s), skipping...", entry.spec, entry.mountpoint)
            continue
        if device.is_zfs_member:
            logger.warning("%s refers to a ZFS pool member; ZFS datasets are mounted by name, skipping...", entry.spec)
            continue
        if not ctx.has_feature(feature_for(device.fstype)):
            logger.error("Support for %s is not available, skipping %s", device.fstype, entry.mountpoint)
            continue

        identity = device.identity()
        options: List[str] = []
        if device.is_btrfs:
            subvolume = select_entry_subvolume(ctx, device, entry)
            if subvolume is None:
                continue
            identity = subvolume.identity()
            options = subvolume.mount_options()

        if identity in ctx.mounted:
            logger.warning("%s for %s is already mounted, skipping...", entry.spec, entry.mountpoint)
            continue

        target = ctx.target_path(entry.mountpoint)
        if mount_block_device(device, target, prompter=ctx.prompter, gracefully_fail=True, options=options):
            ctx.mounted.add(identity)
            mounted_now.append(identity)
    return mounted_now
