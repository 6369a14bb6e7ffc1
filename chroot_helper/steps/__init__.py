from .step_10_select_root import SelectRootStep
from .step_20_resolve_root import ResolveRootStep
from .step_30_mount_root import MountRootStep
from .step_40_auto_mount import AutoMountStep
from .step_50_interactive_mount import InteractiveMountStep
from .step_60_chroot import ChrootStep

__all__ = [
    "SelectRootStep",
    "ResolveRootStep",
    "MountRootStep",
    "AutoMountStep",
    "InteractiveMountStep",
    "ChrootStep",
]
