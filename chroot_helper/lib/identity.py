"""Canonical identities for storage entities and reference matching.

A mount table or key-alias table names devices in several ways
(``UUID=...``, ``/dev/disk/by-partuuid/...``, ``LABEL=...``, a raw device
path). Everything that resolves such a reference goes through
:func:`matches_reference` so the rules stay identical across callers.
"""
from __future__ import annotations

from typing import Optional, Protocol, Tuple


class StorageEntity(Protocol):
    """Anything that can be mounted once per session."""

    def identity(self) -> str:
        ...

    def display_label(self) -> str:
        ...


class Referenceable(Protocol):
    name: str
    uuid: str
    partuuid: Optional[str]
    label: Optional[str]
    partlabel: Optional[str]


# Checked in order; the first matching prefix decides.
REFERENCE_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("UUID=", "uuid"),
    ("/dev/disk/by-uuid/", "uuid"),
    ("PARTUUID=", "partuuid"),
    ("/dev/disk/by-partuuid/", "partuuid"),
    ("LABEL=", "label"),
    ("PARTLABEL=", "partlabel"),
)


def identity_of(entity: StorageEntity) -> str:
    return entity.identity()


def matches_reference(entity: Referenceable, ref: str) -> bool:
    """Return True when ``ref`` designates ``entity``.

    A prefixed reference only ever compares against its own attribute; if the
    entity lacks that attribute the answer is False. Unprefixed references
    are compared with the device path.
    """

    for prefix, attr in REFERENCE_PREFIXES:
        if ref.startswith(prefix):
            value = getattr(entity, attr, None)
            if not value:
                return False
            return ref[len(prefix):] == value
    return ref == entity.name
