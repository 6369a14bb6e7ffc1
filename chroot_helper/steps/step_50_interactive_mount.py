from __future__ import annotations

import logging

from ..context import SessionContext
from ..planner import mount_additional
from ..prompts import Question

logger = logging.getLogger(__name__)


class InteractiveMountStep:
    step_id = "50_interactive_mount"

    def run(self, ctx: SessionContext) -> None:
        while ctx.prompter.confirm(Question.MOUNT_ADDITIONAL):
            mount_point = ctx.prompter.ask_mount_point()
            if mount_point is None:
                break
            device = ctx.prompter.choose_device(mount_point, ctx.devices, allow_skip=True)
            if device is None:
                continue
            mount_additional(ctx, device, mount_point)
