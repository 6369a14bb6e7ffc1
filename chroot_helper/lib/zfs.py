"""ZFS pool import/export, dataset keys and dataset mounts."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, MutableSequence

from ..errors import FatalError
from ..prompts import Prompter, Question
from .block import BlockDevice
from .command import run_cmd

logger = logging.getLogger(__name__)

DATASET_PROPERTIES = ("canmount", "encryption", "keylocation", "mounted", "mountpoint")


@dataclass
class ZfsDataset:
    name: str
    dataset_type: str
    pool: str
    properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, name: str, node: Dict[str, Any]) -> "ZfsDataset":
        props = node.get("properties") or {}
        values = {}
        for key in DATASET_PROPERTIES:
            values[key] = str((props.get(key) or {}).get("value") or "")
        return cls(
            name=str(node.get("name") or name),
            dataset_type=str(node.get("type") or ""),
            pool=str(node.get("pool") or ""),
            properties=values,
        )

    def _prop(self, key: str) -> str:
        return self.properties.get(key, "").lower()

    def identity(self) -> str:
        return f"{self.name}-{self.pool}"

    def display_label(self) -> str:
        return f"ZFS Dataset: {self.name}: Pool: {self.pool}, Mountpoint: {self.mountpoint}"

    @property
    def mountpoint(self) -> str:
        return self.properties.get("mountpoint", "")

    @property
    def is_legacy(self) -> bool:
        return self._prop("mountpoint") == "legacy"

    def has_unsupported_encryption(self) -> bool:
        return self._prop("keylocation") not in ("none", "prompt")

    def is_encrypted(self) -> bool:
        return self._prop("encryption") != "off"

    def is_mountable(self) -> bool:
        return (
            self.dataset_type.lower() == "filesystem"
            and self._prop("canmount") != "off"
            and self._prop("mountpoint") != "none"
        )

    def is_mounted(self) -> bool:
        return self._prop("mounted") == "yes"

    def is_valid_key_root(self) -> bool:
        return self._prop("keylocation") == "prompt"

    def mark_as_mounted(self) -> None:
        self.properties["mounted"] = "yes"

    def mark_as_unmounted(self) -> None:
        self.properties["mounted"] = "no"


def parse_dataset_list(raw: str) -> List[ZfsDataset]:
    payload = json.loads(raw or "{}")
    datasets = payload.get("datasets") or {}
    return sorted(
        (ZfsDataset.from_json(name, node) for name, node in datasets.items()),
        key=lambda d: d.name,
    )


def import_pool(
    device: BlockDevice, target_root: str, *, prompter: Prompter, gracefully_fail: bool = False
) -> bool:
    pool_name = device.identity()
    logger.info("Importing ZFS pool: %s at: %s", pool_name, target_root)
    r = run_cmd(["zpool", "import", device.uuid, "-R", target_root])
    if r.ok:
        return True

    if prompter.confirm(Question.FORCE_IMPORT, pool_name):
        logger.info("Forcing ZFS pool import...")
        r = run_cmd(["zpool", "import", device.uuid, "-f", "-R", target_root])
        if r.ok:
            return True

    if gracefully_fail and prompter.confirm(Question.CONTINUE_ON_MOUNT_FAILURE):
        logger.warning("Failed to import ZFS pool %s, skipping...", pool_name)
        return False
    raise FatalError(f"Failed to import ZFS pool: {pool_name}")


def export_pool(device: BlockDevice, *, prompter: Prompter) -> bool:
    pool_name = device.identity()
    logger.info("Exporting ZFS pool: %s", pool_name)
    if run_cmd(["zpool", "export", pool_name]).ok:
        return True

    if prompter.confirm(Question.FORCE_EXPORT, pool_name):
        logger.info("Forcing ZFS pool export...")
        if run_cmd(["zpool", "export", "-f", pool_name]).ok:
            return True

    logger.error("Failed to export ZFS pool: %s, please perform the operation manually.", pool_name)
    return False


def load_key(dataset_name: str, *, prompter: Prompter) -> bool:
    logger.info("Loading key for ZFS dataset: %s", dataset_name)
    if run_cmd(["zfs", "load-key", dataset_name], interactive=True).ok:
        return True
    logger.error("Failed to load key for ZFS dataset: %s", dataset_name)

    while prompter.confirm(Question.RETRY_KEY_PASSPHRASE, dataset_name):
        logger.info("Retrying to load key for ZFS dataset: %s", dataset_name)
        if run_cmd(["zfs", "load-key", dataset_name], interactive=True).ok:
            return True
        logger.error("Failed to load key for ZFS dataset: %s", dataset_name)
    return False


def unload_key(dataset_name: str) -> bool:
    logger.info("Unloading key for ZFS dataset: %s", dataset_name)
    r = run_cmd(["zfs", "unload-key", dataset_name])
    if not r.ok:
        logger.error(
            "Failed to unload key for ZFS dataset: %s, please perform the operation manually.",
            dataset_name,
        )
    return r.ok


def list_mountable_datasets(
    pool: str, loaded_keys: MutableSequence[str], *, prompter: Prompter
) -> List[ZfsDataset]:
    """List the mountable filesystems of ``pool``, unlocking keys on the way.

    Datasets whose key could not be loaded stay in the result; mounting them
    fails later and is reported there.
    """

    r = run_cmd(
        ["zfs", "list", "-j", "-o", ",".join(DATASET_PROPERTIES), "-t", "filesystem", "-r", pool]
    )
    if not r.ok:
        logger.error("Failed to list ZFS datasets of pool %s: %s", pool, r.stderr.strip())
        return []
    try:
        datasets = parse_dataset_list(r.stdout)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse zfs list output: %s", e)
        return []

    if any(d.has_unsupported_encryption() for d in datasets):
        logger.warning(
            "One or more ZFS datasets have unsupported encryption methods. Only datasets with "
            "'none' or 'prompt' keylocation are supported. You might need to manually unlock "
            "these datasets."
        )

    encrypted_roots = [d for d in datasets if d.is_encrypted() and d.is_valid_key_root()]
    if encrypted_roots:
        logger.info(
            "Detected %d encrypted ZFS dataset(s) that require a passphrase to unlock.",
            len(encrypted_roots),
        )
    for dataset in encrypted_roots:
        if dataset.name in loaded_keys:
            logger.info("Key for ZFS dataset: %s already loaded, skipping prompt.", dataset.name)
            continue
        logger.info("Please enter passphrase for ZFS dataset: %s", dataset.name)
        if load_key(dataset.name, prompter=prompter):
            logger.info("Successfully loaded key for ZFS dataset: %s", dataset.name)
            loaded_keys.append(dataset.name)
        else:
            logger.error(
                "Failed to load key for ZFS dataset: %s. You will not be able to mount this "
                "dataset and its children datasets.",
                dataset.name,
            )

    return [d for d in datasets if d.is_mountable()]


def mount_dataset(
    dataset: ZfsDataset, target: str, *, prompter: Prompter, gracefully_fail: bool
) -> bool:
    """Mount ``dataset``; True when it ends up mounted.

    An already mounted dataset is left alone. False means the user skipped a
    failed mount.
    """

    logger.info("Mounting ZFS dataset %s at %s", dataset.name, target)
    if dataset.is_mounted():
        logger.warning("ZFS dataset %s is already mounted, skipping...", dataset.name)
        return True

    if dataset.is_legacy:
        argv = ["mount", "-t", "zfs", dataset.name, target]
    else:
        argv = ["zfs", "mount", dataset.name]
    if not run_cmd(argv).ok:
        if gracefully_fail and prompter.confirm(Question.CONTINUE_ON_MOUNT_FAILURE):
            logger.warning("Failed to mount ZFS dataset %s at %s, skipping...", dataset.name, target)
            return False
        raise FatalError(f"Failed to mount ZFS dataset {dataset.name} at {target}")

    dataset.mark_as_mounted()
    return True


def unmount_dataset(dataset: ZfsDataset) -> bool:
    logger.info("Unmounting ZFS dataset %s", dataset.name)
    if dataset.is_legacy:
        argv = ["umount", dataset.name]
    else:
        argv = ["zfs", "unmount", dataset.name]
    if not run_cmd(argv).ok:
        logger.warning(
            "Failed to unmount ZFS dataset: %s, please perform the operation manually.", dataset.name
        )
        return False
    dataset.mark_as_unmounted()
    return True
