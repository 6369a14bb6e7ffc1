"""BTRFS subvolume discovery and selection.

Listing requires the filesystem to be mounted, so :func:`list_subvolumes`
mounts the device on a throwaway directory and always unmounts it again.
The directory is only removed once the unmount succeeded.
Results are cached per device identity for the rest of the session.
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import List, MutableMapping, Optional

from ..errors import FatalError
from ..prompts import Prompter, Question
from .block import BlockDevice, mount_block_device, umount_block_device
from .command import run_cmd
from .env import PATHS

logger = logging.getLogger(__name__)

ROOT_SUBVOLUME_ID = 5
DEFAULT_ROOT_SUBVOLUME = "@"
SNAPSHOTS_PREFIX = ".snapshots"

SubvolumeCache = MutableMapping[str, List["BtrfsSubvolume"]]


@dataclass(frozen=True)
class BtrfsSubvolume:
    device: BlockDevice
    subvolume_id: int
    name: str

    def identity(self) -> str:
        return f"{self.device.identity()}-{self.subvolume_id}"

    def display_label(self) -> str:
        return f"[{self.device.name}] BTRFS Subvolume: {self.name}: SubVol ID: {self.subvolume_id}"

    @property
    def is_root(self) -> bool:
        return self.subvolume_id == ROOT_SUBVOLUME_ID

    def mount_options(self) -> List[str]:
        return [f"subvolid={self.subvolume_id}"]


def parse_subvolume_list(
    device: BlockDevice, raw: str, *, include_dot_snapshots: bool = False
) -> List[BtrfsSubvolume]:
    """Parse ``btrfs subvolume list -t`` output.

    The first two lines are the table header. Rows are ``ID GEN TOP PATH``.
    """

    subvolumes = [BtrfsSubvolume(device, ROOT_SUBVOLUME_ID, "/")]
    for line in raw.strip().splitlines()[2:]:
        # The path is the last column and may itself contain whitespace.
        parts = line.split(None, 3)
        if len(parts) != 4:
            logger.debug("Ignoring subvolume line: %s", line.strip())
            continue
        try:
            subvolume_id = int(parts[0])
        except ValueError:
            logger.warning("Unable to parse subvolume line: %s", line.strip())
            continue
        name = parts[3].strip()
        if name.startswith(SNAPSHOTS_PREFIX) and not include_dot_snapshots:
            continue
        subvolumes.append(BtrfsSubvolume(device, subvolume_id, name))
    return subvolumes


def list_subvolumes(
    device: BlockDevice, *, prompter: Prompter, include_dot_snapshots: bool = False
) -> List[BtrfsSubvolume]:
    mount_point = tempfile.mkdtemp(prefix=f"{PATHS.probe_prefix}{device.uuid}-")
    mounted = False
    try:
        mount_block_device(device, mount_point, prompter=prompter, gracefully_fail=False)
        mounted = True
        r = run_cmd(["btrfs", "subvolume", "list", "-t", mount_point])
        if not r.ok:
            raise FatalError(f"Failed to list BTRFS subvolumes of {device.name}: {r.stderr.strip()}")
        return parse_subvolume_list(device, r.stdout, include_dot_snapshots=include_dot_snapshots)
    finally:
        if mounted and not umount_block_device(mount_point):
            logger.warning("%s is still mounted at %s, leaving it in place", device.name, mount_point)
        else:
            _remove_mount_point(mount_point)


def _remove_mount_point(mount_point: str) -> None:
    try:
        os.rmdir(mount_point)
    except OSError as e:
        logger.warning("Leaving mount point %s in place: %s", mount_point, e)


def get_subvolumes(
    device: BlockDevice,
    cache: SubvolumeCache,
    *,
    prompter: Prompter,
    include_dot_snapshots: bool = False,
) -> List[BtrfsSubvolume]:
    key = device.identity()
    if key not in cache:
        subvolumes = list_subvolumes(device, prompter=prompter, include_dot_snapshots=include_dot_snapshots)
        for subvolume in subvolumes:
            logger.info("Found subvolume: %s", subvolume.name)
        cache[key] = subvolumes
    return cache[key]


def find_subvolume(
    subvolumes: List[BtrfsSubvolume],
    *,
    subvolume_id: Optional[int] = None,
    name: Optional[str] = None,
) -> Optional[BtrfsSubvolume]:
    for subvolume in subvolumes:
        if subvolume_id is not None and subvolume.subvolume_id == subvolume_id:
            return subvolume
        if name is not None and subvolume.name in (name, name[1:] if name.startswith("/") else name):
            return subvolume
    return None


def resolve_subvolume(
    device: BlockDevice,
    cache: SubvolumeCache,
    *,
    prompter: Prompter,
    role: str,
    include_dot_snapshots: bool = False,
) -> BtrfsSubvolume:
    subvolumes = get_subvolumes(
        device, cache, prompter=prompter, include_dot_snapshots=include_dot_snapshots
    )
    if len(subvolumes) == 1:
        logger.warning("No subvolumes found, using root subvolume")
        return subvolumes[0]

    if role == "root":
        preset = find_subvolume(subvolumes, name=DEFAULT_ROOT_SUBVOLUME)
        if preset is not None and prompter.confirm(Question.USE_DEFAULT_SUBVOLUME):
            return preset

    return prompter.choose_subvolume(role, subvolumes)
