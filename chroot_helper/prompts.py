"""Chooser/confirmer boundary between the core and the terminal.

The core only ever talks to a :class:`Prompter`; :class:`InquirerPrompter`
is the interactive implementation used by the CLI.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

if TYPE_CHECKING:
    from .lib.block import BlockDevice
    from .lib.btrfs import BtrfsSubvolume
    from .lib.zfs import ZfsDataset

logger = logging.getLogger(__name__)


class Question(Enum):
    CONTINUE_ON_MOUNT_FAILURE = "Do you want to skip mounting this partition?"
    FORCE_IMPORT = "Failed to import ZFS pool {subject}. Do you want to force the import?"
    FORCE_EXPORT = "Failed to export ZFS pool {subject}. Do you want to force the export?"
    RETRY_KEY_PASSPHRASE = "Failed to load key for ZFS dataset {subject}. Do you want to retry?"
    USE_DEFAULT_SUBVOLUME = "Do you want to use the '@' BTRFS preset to auto mount the root subvolume?"
    MOUNT_ADDITIONAL = "Do you want to mount additional partitions?"

    def text(self, subject: Optional[str] = None) -> str:
        return self.value.format(subject=subject or "")


class Prompter(Protocol):
    def choose_device(
        self, role: str, devices: Sequence["BlockDevice"], allow_skip: bool
    ) -> Optional["BlockDevice"]:
        ...

    def choose_subvolume(self, role: str, subvolumes: Sequence["BtrfsSubvolume"]) -> "BtrfsSubvolume":
        ...

    def choose_datasets(self, role: str, datasets: Sequence["ZfsDataset"]) -> List["ZfsDataset"]:
        ...

    def confirm(self, question: Question, subject: Optional[str] = None) -> bool:
        ...

    def ask_mount_point(self) -> Optional[str]:
        """Return an absolute mount point, or None when the user typed 'skip'."""
        ...


def _valid_mount_point(text: str) -> bool:
    return text.startswith("/") or text.strip().lower() == "skip"


class InquirerPrompter:
    """Terminal prompts built on InquirerPy."""

    max_height = 10

    def choose_device(self, role, devices, allow_skip):
        choices = [Choice(value=i, name=d.display_label()) for i, d in enumerate(devices)]
        if allow_skip:
            choices.append(Choice(value=None, name="Skip"))
        index = inquirer.select(
            message=f"Select the block device for the {role} partition:",
            choices=choices,
            max_height=self.max_height,
        ).execute()
        if index is None:
            return None
        return devices[index]

    def choose_subvolume(self, role, subvolumes):
        index = inquirer.select(
            message=f"Select the subvolume for the {role} partition:",
            choices=[Choice(value=i, name=s.display_label()) for i, s in enumerate(subvolumes)],
            max_height=self.max_height,
        ).execute()
        return subvolumes[index]

    def choose_datasets(self, role, datasets):
        picked = inquirer.checkbox(
            message=f"Select the ZFS datasets to mount for {role} (space to toggle):",
            choices=[Choice(value=i, name=d.display_label(), enabled=True) for i, d in enumerate(datasets)],
            max_height=self.max_height,
        ).execute()
        return [datasets[i] for i in picked or []]

    def confirm(self, question, subject=None):
        return bool(inquirer.confirm(message=question.text(subject), default=False).execute())

    def ask_mount_point(self):
        answer = inquirer.text(
            message="Enter the mount point for additional partition (e.g. /boot) type 'skip' to cancel:",
            validate=_valid_mount_point,
            invalid_message="Mount point must start with /",
        ).execute()
        answer = (answer or "").strip()
        if answer.lower() == "skip":
            return None
        return answer
