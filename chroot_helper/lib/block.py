from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..errors import FatalError
from ..prompts import Prompter, Question
from .command import run_cmd
from .identity import matches_reference

logger = logging.getLogger(__name__)

LSBLK_COLUMNS = "NAME,TYPE,FSTYPE,UUID,PARTUUID,LABEL,PARTLABEL"
_LISTED_TYPES = {"part", "crypt"}


@dataclass(frozen=True)
class BlockDevice:
    name: str
    fstype: str
    uuid: str
    partuuid: Optional[str] = None
    label: Optional[str] = None
    partlabel: Optional[str] = None

    @classmethod
    def from_lsblk(cls, node: Dict[str, Any]) -> "BlockDevice":
        return cls(
            name=str(node.get("name") or ""),
            fstype=str(node.get("fstype") or ""),
            uuid=str(node.get("uuid") or ""),
            partuuid=node.get("partuuid") or None,
            label=node.get("label") or None,
            partlabel=node.get("partlabel") or None,
        )

    def identity(self) -> str:
        # ZFS pool members share the pool guid; the pool name is what callers need.
        if self.is_zfs_member and self.label:
            return self.label
        return self.uuid

    def display_label(self) -> str:
        return f"Partition: {self.name}: FS: {self.fstype} UUID: {self.uuid}"

    def __str__(self) -> str:
        return self.display_label()

    @property
    def is_crypto_luks(self) -> bool:
        return self.fstype.lower() == "crypto_luks"

    @property
    def is_zfs_member(self) -> bool:
        return self.fstype.lower() == "zfs_member"

    @property
    def is_btrfs(self) -> bool:
        return self.fstype.lower() == "btrfs"

    def matches_reference(self, ref: str) -> bool:
        return matches_reference(self, ref)


def parse_lsblk(raw: str) -> List[BlockDevice]:
    """Turn ``lsblk -J -l`` output into the devices this tool can mount."""

    payload = json.loads(raw or "{}")
    devices: List[BlockDevice] = []
    for node in payload.get("blockdevices") or []:
        if node.get("type") not in _LISTED_TYPES:
            continue
        fstype = (node.get("fstype") or "").strip()
        if not fstype or fstype == "swap":
            continue
        device = BlockDevice.from_lsblk(node)
        if not device.identity():
            logger.debug("Ignoring %s: no uuid or label", device.name)
            continue
        devices.append(device)
    return devices


def list_block_devices(ignored: Optional[Iterable[BlockDevice]] = None) -> List[BlockDevice]:
    r = run_cmd(["lsblk", "-J", "-l", "-p", "-o", LSBLK_COLUMNS])
    if not r.ok:
        raise FatalError(f"Failed to run lsblk: {r.stderr.strip()}")
    try:
        devices = parse_lsblk(r.stdout)
    except json.JSONDecodeError as e:
        raise FatalError(f"Failed to parse lsblk output: {e}") from e

    skip = list(ignored or [])
    if skip:
        devices = [d for d in devices if d not in skip]
    return devices


def find_device(devices: Sequence[BlockDevice], ref: str) -> Optional[BlockDevice]:
    for device in devices:
        if device.matches_reference(ref):
            return device
    return None


def mount_block_device(
    device: BlockDevice,
    mount_point: str,
    *,
    prompter: Prompter,
    gracefully_fail: bool,
    options: Optional[Sequence[str]] = None,
) -> bool:
    """Mount ``device`` at ``mount_point``.

    Returns False when the mount failed and the user chose to skip it. A
    failure without ``gracefully_fail`` (or a declined skip) is fatal.
    """

    opts = list(options or [])
    logger.info("Mounting partition %s at %s with options: %s", device.name, mount_point, opts)
    argv = ["mount", device.name, mount_point]
    if opts:
        argv += ["-o", ",".join(opts)]
    r = run_cmd(argv)
    if r.ok:
        return True

    if gracefully_fail and prompter.confirm(Question.CONTINUE_ON_MOUNT_FAILURE):
        logger.warning("Failed to mount partition %s at %s, skipping...", device.name, mount_point)
        return False
    raise FatalError(f"Failed to mount partition {device.name} at {mount_point}")


def umount_block_device(mount_point: str, *, recursive: bool = False) -> bool:
    logger.info("Unmounting partition at %s", mount_point)
    argv = ["umount", "-R", mount_point] if recursive else ["umount", mount_point]
    r = run_cmd(argv)
    if not r.ok:
        logger.warning("Failed to unmount %s: %s", mount_point, r.stderr.strip())
    return r.ok
