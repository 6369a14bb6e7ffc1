import json
from typing import Dict, List, Optional

import pytest

from chroot_helper.config import SessionOptions
from chroot_helper.context import SessionContext
from chroot_helper.lib import block, btrfs, chroot, luks, zfs
from chroot_helper.lib.block import BlockDevice
from chroot_helper.lib.command import CmdResult


class FakeRunner:
    """Stand-in for ``run_cmd``: records argv and answers by argv prefix."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.interactive: List[List[str]] = []
        self._rules: List[list] = []

    def on(self, prefix, *, returncode=0, stdout="", stderr="", times=None):
        self._rules.append([list(prefix), returncode, stdout, stderr, times])
        return self

    def fail(self, prefix, *, times=None, stderr="failed"):
        return self.on(prefix, returncode=1, stderr=stderr, times=times)

    def __call__(self, argv, *, check=False, env=None, interactive=False):  # noqa: ARG002
        argv = list(argv)
        self.calls.append(argv)
        if interactive:
            self.interactive.append(argv)
        for rule in self._rules:
            prefix, rc, out, err, times = rule
            if argv[: len(prefix)] != prefix:
                continue
            if times is not None:
                if times <= 0:
                    continue
                rule[4] = times - 1
            return CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def commands(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if c and c[0] == name]


class ScriptedPrompter:
    """Answers prompts from queues; unanswered confirmations default to False."""

    def __init__(
        self,
        *,
        devices=(),
        subvolumes=(),
        datasets=(),
        mount_points=(),
        confirms: Optional[Dict] = None,
    ) -> None:
        self.devices = list(devices)
        self.subvolumes = list(subvolumes)
        self.datasets = list(datasets)
        self.mount_points = list(mount_points)
        self.confirms = dict(confirms or {})
        self.asked: List[tuple] = []

    def choose_device(self, role, devices, allow_skip):
        self.asked.append(("device", role))
        answer = self.devices.pop(0)
        if isinstance(answer, str):
            return next(d for d in devices if d.name == answer)
        return answer

    def choose_subvolume(self, role, subvolumes):
        self.asked.append(("subvolume", role))
        name = self.subvolumes.pop(0)
        return next(s for s in subvolumes if s.name == name)

    def choose_datasets(self, role, datasets):
        self.asked.append(("datasets", role))
        if not self.datasets:
            return list(datasets)
        names = self.datasets.pop(0)
        return [d for d in datasets if d.name in names]

    def confirm(self, question, subject=None):
        self.asked.append(("confirm", question))
        answer = self.confirms.get(question, False)
        if isinstance(answer, list):
            return answer.pop(0) if answer else False
        return bool(answer)

    def ask_mount_point(self):
        self.asked.append(("mount_point", None))
        return self.mount_points.pop(0) if self.mount_points else None


def lsblk_json(*devices: BlockDevice, extra=()) -> str:
    nodes = []
    for d in devices:
        nodes.append(
            {
                "name": d.name,
                "type": "crypt" if d.name.startswith("/dev/mapper/") else "part",
                "fstype": d.fstype,
                "uuid": d.uuid,
                "partuuid": d.partuuid,
                "label": d.label,
                "partlabel": d.partlabel,
            }
        )
    nodes.extend(extra)
    return json.dumps({"blockdevices": nodes})


def subvolume_listing(*rows) -> str:
    lines = ["ID\tgen\ttop level\tpath", "--\t---\t---------\t----"]
    for subvolume_id, name in rows:
        lines.append(f"{subvolume_id}\t10\t5\t{name}")
    return "\n".join(lines) + "\n"


def dataset_json(*datasets: dict) -> str:
    nodes = {}
    for d in datasets:
        props = {
            "canmount": "on",
            "encryption": "off",
            "keylocation": "none",
            "mounted": "no",
            "mountpoint": "/",
        }
        props.update(d.get("properties") or {})
        nodes[d["name"]] = {
            "name": d["name"],
            "type": "FILESYSTEM",
            "pool": d["name"].split("/")[0],
            "properties": {k: {"value": v, "source": {"type": "LOCAL", "data": "-"}} for k, v in props.items()},
        }
    return json.dumps({"output_version": {"command": "zfs list", "vers_major": 0, "vers_minor": 1}, "datasets": nodes})


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    for module in (block, btrfs, zfs, luks, chroot):
        monkeypatch.setattr(module, "run_cmd", fake)
    return fake


@pytest.fixture
def prompter():
    return ScriptedPrompter()


@pytest.fixture
def ext4_root():
    return BlockDevice(name="/dev/sda2", fstype="ext4", uuid="abcd", partuuid="1111-02", label="root")


@pytest.fixture
def ext4_home():
    return BlockDevice(name="/dev/sda3", fstype="ext4", uuid="efgh", partuuid="1111-03")


@pytest.fixture
def btrfs_disk():
    return BlockDevice(name="/dev/nvme0n1p2", fstype="btrfs", uuid="b7f5", label="arch")


@pytest.fixture
def luks_container():
    return BlockDevice(name="/dev/sdb1", fstype="crypto_LUKS", uuid="c0ffee")


@pytest.fixture
def zfs_member():
    return BlockDevice(name="/dev/sdc1", fstype="zfs_member", uuid="1234567890", label="rpool")


@pytest.fixture
def make_ctx(tmp_path):
    def _make(prompter, devices=(), **options):
        root = tmp_path / "root"
        root.mkdir(exist_ok=True)
        ctx = SessionContext(options=SessionOptions(**options), prompter=prompter)
        ctx.devices = list(devices)
        ctx.root_mount_point = str(root)
        return ctx

    return _make
