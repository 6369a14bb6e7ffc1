from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from ..errors import FatalError
from ..prompts import Prompter, Question
from .block import BlockDevice
from .command import run_cmd
from .env import PATHS

logger = logging.getLogger(__name__)

ALIAS_REFERENCE_PREFIX = "UUID="


def mapped_name(device: BlockDevice) -> str:
    return f"luks-{device.uuid}"


def mapped_path(device: BlockDevice) -> str:
    return f"{PATHS.mapper_dir}/{mapped_name(device)}"


def open_device(
    device: BlockDevice, *, prompter: Optional[Prompter] = None, gracefully_fail: bool = False
) -> Optional[str]:
    """Unlock ``device``; cryptsetup asks for the passphrase on the terminal.

    Returns the mapped name, or None when the user skipped a failed
    non-root volume.
    """

    logger.info("Opening LUKS encrypted partition %s", device.name)
    name = mapped_name(device)
    if run_cmd(["cryptsetup", "luksOpen", device.name, name], interactive=True).ok:
        return name
    if gracefully_fail and prompter is not None and prompter.confirm(Question.CONTINUE_ON_MOUNT_FAILURE):
        logger.warning("Failed to open LUKS encrypted partition %s, skipping...", device.name)
        return None
    raise FatalError(f"Failed to open LUKS encrypted partition {device.name}")


def close_device(device: BlockDevice) -> bool:
    logger.info("Closing LUKS encrypted partition %s", device.name)
    r = run_cmd(["cryptsetup", "luksClose", mapped_name(device)])
    if not r.ok:
        logger.warning("Failed to close LUKS encrypted partition %s", device.name)
    return r.ok


def load_key_aliases(crypttab_path: Path, root_is_encrypted: bool) -> Dict[str, str]:
    """Read ``/etc/crypttab`` into ``{mapped name: device reference}``.

    A leading ``UUID=`` is stripped from the reference.
    """

    if not crypttab_path.exists():
        if root_is_encrypted:
            logger.warning(
                "Unable to find /etc/crypttab in the root partition, is this a valid root partition?"
            )
        return {}

    try:
        contents = crypttab_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Failed to read %s, skipping... (%s)", crypttab_path, e)
        return {}

    aliases: Dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split()
        if len(parts) < 2:
            logger.warning("Invalid crypttab entry, skipping: %s", stripped)
            continue
        aliases[parts[0]] = parts[1].removeprefix(ALIAS_REFERENCE_PREFIX)
    return aliases
