"""chroot-helper: mount an installed system and chroot into it.

Core design goals:
- Resolve devices the same way everywhere (UUID/PARTUUID/LABEL/path)
- Never mount the same partition, subvolume or dataset twice
- Always release what was opened (mounts, LUKS mappings, ZFS keys and pools)
- Centralized logging
"""

__all__ = []
