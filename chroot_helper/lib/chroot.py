from __future__ import annotations

import logging

from ..errors import FatalError
from .command import run_cmd

logger = logging.getLogger(__name__)


def chroot_into(target_root: str, *, systemd: bool = True) -> int:
    """Open an interactive shell inside ``target_root`` and wait for it to exit.

    ``systemd`` runs the session in a transient systemd instance
    (``arch-chroot -S``).
    """

    argv = ["arch-chroot"]
    if systemd:
        argv.append("-S")
    argv.append(target_root)

    logger.info("Chrooting into the configured root partition...")
    logger.info("To exit the chroot, type 'exit' or press Ctrl+D")
    try:
        r = run_cmd(argv, interactive=True)
    except OSError as e:
        raise FatalError(f"Failed to chroot into root partition: {e}") from e

    if not r.ok:
        logger.warning("Chroot session exited with status %d", r.returncode)
    return r.returncode
