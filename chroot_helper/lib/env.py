from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    config_default: str = "/etc/chroot-helper.yaml"
    log_default: str = "/var/log/chroot-helper.log"
    fstab_rel: str = "etc/fstab"
    crypttab_rel: str = "etc/crypttab"
    mapper_dir: str = "/dev/mapper"
    probe_prefix: str = "chroot-helper-probe-"
    root_prefix: str = "chroot-helper-root-"


PATHS = Paths()
