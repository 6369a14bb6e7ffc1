from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


def _unescape(field: str) -> str:
    # fstab encodes whitespace in paths as octal escapes.
    return field.replace("\\040", " ").replace("\\011", "\t")


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: Tuple[str, ...] = ("defaults",)
    dump: int = 0
    passno: int = 0

    def option_value(self, key: str) -> Optional[str]:
        """Value of ``key=value`` in the options, first occurrence wins."""

        prefix = f"{key}="
        for option in self.options:
            if option.startswith(prefix):
                return option[len(prefix):]
        return None

    def has_option(self, flag: str) -> bool:
        return flag in self.options


def parse_fstab_line(line: str) -> Optional[FstabEntry]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    parts = stripped.split()
    if len(parts) < 3:
        raise ValueError(f"expected at least 3 fields, got {len(parts)}")
    options = tuple(o for o in (parts[3] if len(parts) > 3 else "defaults").split(",") if o)
    return FstabEntry(
        spec=_unescape(parts[0]),
        mountpoint=_unescape(parts[1]),
        fstype=parts[2],
        options=options,
        dump=int(parts[4]) if len(parts) > 4 else 0,
        passno=int(parts[5]) if len(parts) > 5 else 0,
    )


def parse_fstab(path: Path) -> List[FstabEntry]:
    if not path.exists():
        logger.warning(
            "Unable to find /etc/fstab in the root partition, is this a valid root partition?"
        )
        return []

    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Failed to read %s, skipping automatic mounts (%s)", path, e)
        return []

    entries: List[FstabEntry] = []
    for lineno, line in enumerate(contents.splitlines(), start=1):
        try:
            entry = parse_fstab_line(line)
        except ValueError as e:
            logger.warning("Invalid fstab entry on line %d, skipping: %s", lineno, e)
            continue
        if entry is not None:
            entries.append(entry)
    return entries
