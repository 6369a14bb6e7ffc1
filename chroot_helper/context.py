from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .config import SessionOptions
from .lib.block import BlockDevice, list_block_devices
from .lib.btrfs import BtrfsSubvolume
from .lib.depends import ALL_FEATURES, Features
from .lib.zfs import ZfsDataset
from .prompts import Prompter


class MountedSet:
    """Identities mounted during this session, in mount order."""

    def __init__(self) -> None:
        self._identities: List[str] = []

    def add(self, identity: str) -> None:
        if identity not in self._identities:
            self._identities.append(identity)

    def discard(self, identity: str) -> None:
        if identity in self._identities:
            self._identities.remove(identity)

    def clear(self) -> None:
        self._identities.clear()

    def __contains__(self, identity: object) -> bool:
        return identity in self._identities

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._identities))

    def __len__(self) -> int:
        return len(self._identities)


@dataclass
class OpenedResources:
    luks_devices: List[BlockDevice] = field(default_factory=list)
    imported_pools: List[BlockDevice] = field(default_factory=list)
    loaded_keys: List[str] = field(default_factory=list)
    mounted_datasets: List[ZfsDataset] = field(default_factory=list)

    def is_pool_imported(self, device: BlockDevice) -> bool:
        return any(p.identity() == device.identity() for p in self.imported_pools)

    def is_luks_open(self, device: BlockDevice) -> bool:
        return any(d.identity() == device.identity() for d in self.luks_devices)


@dataclass
class SessionContext:
    options: SessionOptions
    prompter: Prompter
    features: Features = ALL_FEATURES
    devices: List[BlockDevice] = field(default_factory=list)
    mounted: MountedSet = field(default_factory=MountedSet)
    subvolume_cache: Dict[str, List[BtrfsSubvolume]] = field(default_factory=dict)
    pool_datasets: Dict[str, List[ZfsDataset]] = field(default_factory=dict)
    key_aliases: Dict[str, str] = field(default_factory=dict)
    resources: OpenedResources = field(default_factory=OpenedResources)

    root_device: Optional[BlockDevice] = None
    root_subvolume: Optional[BtrfsSubvolume] = None
    root_datasets: List[ZfsDataset] = field(default_factory=list)
    root_mount_point: Optional[str] = None
    root_mounted: bool = False
    root_is_encrypted: bool = False
    chroot_returncode: Optional[int] = None

    def refresh_devices(self) -> List[BlockDevice]:
        # Unlocked containers are replaced by their mappings.
        self.devices = list_block_devices(ignored=self.resources.luks_devices)
        return self.devices

    def has_feature(self, feature: Features) -> bool:
        return feature == Features.NONE or feature in self.features

    def target_path(self, mount_point: str) -> str:
        if not self.root_mount_point:
            raise RuntimeError("root mount point is not set")
        return os.path.join(self.root_mount_point, mount_point.lstrip("/"))

    def find_dataset(self, name: str) -> Optional[ZfsDataset]:
        for datasets in self.pool_datasets.values():
            for dataset in datasets:
                if dataset.name == name:
                    return dataset
        return None
