from __future__ import annotations

import logging
from typing import Optional

from ..context import SessionContext
from ..errors import FatalError
from ..lib.block import BlockDevice, find_device
from ..lib.depends import Features, feature_for
from ..lib.luks import mapped_path, open_device

logger = logging.getLogger(__name__)


class SelectRootStep:
    """Pick the root device, unlocking LUKS containers until a filesystem shows up."""

    step_id = "10_select_root"

    def run(self, ctx: SessionContext) -> None:
        devices = ctx.refresh_devices()
        logger.info("Found %d block devices", len(devices))
        if not devices:
            raise FatalError("No block devices found on the system")
        for device in devices:
            logger.info("Found partition: %s", device)

        reference = ctx.options.root_reference
        device = self._pick(ctx, reference)
        while device.is_crypto_luks:
            if not ctx.has_feature(Features.LUKS):
                raise FatalError(f"{device.name} is LUKS encrypted but cryptsetup is not installed")
            open_device(device)
            ctx.resources.luks_devices.append(device)
            ctx.root_is_encrypted = True
            ctx.refresh_devices()
            # The decrypted root is a new device; choose again.
            device = self._pick(ctx, mapped_path(device) if reference else None)

        if not ctx.has_feature(feature_for(device.fstype)):
            raise FatalError(f"Support for {device.fstype} is not available, cannot use {device.name} as root")
        logger.info("Using %s as root partition", device.name)
        ctx.root_device = device

    def _pick(self, ctx: SessionContext, reference: Optional[str]) -> BlockDevice:
        if reference:
            device = find_device(ctx.devices, reference)
            if device is None:
                raise FatalError(f"No block device matches root reference {reference}")
            return device

        device = ctx.prompter.choose_device("root", ctx.devices, allow_skip=False)
        if device is None:
            raise FatalError("No block device selected for root partition")
        return device
