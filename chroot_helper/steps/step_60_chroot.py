from __future__ import annotations

from ..context import SessionContext
from ..lib.chroot import chroot_into


class ChrootStep:
    step_id = "60_chroot"

    def run(self, ctx: SessionContext) -> None:
        ctx.chroot_returncode = chroot_into(ctx.root_mount_point, systemd=ctx.options.systemd_chroot)
