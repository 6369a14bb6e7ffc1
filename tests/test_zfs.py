import logging

import pytest

from chroot_helper.errors import FatalError
from chroot_helper.lib import zfs
from chroot_helper.prompts import Question
from conftest import ScriptedPrompter, dataset_json

POOL = dataset_json(
    {"name": "rpool", "properties": {"canmount": "off", "mountpoint": "none"}},
    {"name": "rpool/ROOT/arch", "properties": {"mountpoint": "/", "canmount": "noauto"}},
    {"name": "rpool/home", "properties": {"mountpoint": "/home", "encryption": "aes-256-gcm", "keylocation": "prompt"}},
    {"name": "rpool/var", "properties": {"mountpoint": "none"}},
    {"name": "rpool/data", "properties": {"mountpoint": "legacy"}},
)


def _dataset(name="rpool/home", **props):
    base = {"canmount": "on", "encryption": "off", "keylocation": "none", "mounted": "no", "mountpoint": "/home"}
    base.update(props)
    return zfs.ZfsDataset(name=name, dataset_type="filesystem", pool=name.split("/")[0], properties=base)


def test_parse_dataset_list():
    datasets = zfs.parse_dataset_list(POOL)
    assert [d.name for d in datasets] == ["rpool", "rpool/ROOT/arch", "rpool/data", "rpool/home", "rpool/var"]
    home = datasets[3]
    assert home.is_encrypted() and home.is_valid_key_root()
    assert home.mountpoint == "/home"
    assert datasets[2].is_legacy


def test_list_mountable_datasets_filters_and_loads_keys(runner, prompter):
    runner.on(["zfs", "list"], stdout=POOL)
    loaded = []
    datasets = zfs.list_mountable_datasets("rpool", loaded, prompter=prompter)
    assert [d.name for d in datasets] == ["rpool/ROOT/arch", "rpool/data", "rpool/home"]
    assert runner.interactive == [["zfs", "load-key", "rpool/home"]]
    assert loaded == ["rpool/home"]
    assert runner.calls[0] == [
        "zfs", "list", "-j", "-o", "canmount,encryption,keylocation,mounted,mountpoint",
        "-t", "filesystem", "-r", "rpool",
    ]


def test_already_loaded_key_is_not_requested_again(runner, prompter):
    runner.on(["zfs", "list"], stdout=POOL)
    loaded = ["rpool/home"]
    zfs.list_mountable_datasets("rpool", loaded, prompter=prompter)
    assert runner.commands("zfs") == [runner.calls[0]]
    assert loaded == ["rpool/home"]


def test_unsupported_encryption_warns_once(runner, prompter, caplog):
    runner.on(
        ["zfs", "list"],
        stdout=dataset_json(
            {"name": "tank/a", "properties": {"encryption": "on", "keylocation": "file:///etc/zfs/a.key"}},
            {"name": "tank/b", "properties": {"encryption": "on", "keylocation": "https://keys/b"}},
        ),
    )
    datasets = zfs.list_mountable_datasets("tank", [], prompter=prompter)
    assert len(datasets) == 2
    assert caplog.text.count("unsupported encryption") == 1
    assert runner.interactive == []


def test_list_failure_returns_empty(runner, prompter):
    runner.fail(["zfs", "list"])
    assert zfs.list_mountable_datasets("rpool", [], prompter=prompter) == []


def test_load_key_retries_until_success(runner):
    runner.fail(["zfs", "load-key"], times=2)
    prompter = ScriptedPrompter(confirms={Question.RETRY_KEY_PASSPHRASE: [True, True]})
    assert zfs.load_key("rpool/home", prompter=prompter)
    assert len(runner.interactive) == 3


def test_load_key_gives_up_when_declined(runner, prompter):
    runner.fail(["zfs", "load-key"])
    assert not zfs.load_key("rpool/home", prompter=prompter)
    assert len(runner.interactive) == 1


def test_mount_already_mounted_dataset_is_noop(runner, prompter, caplog):
    dataset = _dataset(mounted="yes")
    with caplog.at_level(logging.WARNING):
        assert zfs.mount_dataset(dataset, "/mnt/home", prompter=prompter, gracefully_fail=False)
    assert runner.calls == []
    assert dataset.is_mounted()
    assert "already mounted" in caplog.text


def test_mount_dataset_by_property_and_legacy(runner, prompter):
    regular = _dataset()
    legacy = _dataset("rpool/data", mountpoint="legacy")
    zfs.mount_dataset(regular, "/mnt/home", prompter=prompter, gracefully_fail=False)
    zfs.mount_dataset(legacy, "/mnt/data", prompter=prompter, gracefully_fail=False)
    assert runner.calls == [
        ["zfs", "mount", "rpool/home"],
        ["mount", "-t", "zfs", "rpool/data", "/mnt/data"],
    ]
    assert regular.is_mounted() and legacy.is_mounted()


def test_mount_dataset_failure(runner, prompter):
    runner.fail(["zfs", "mount"])
    dataset = _dataset()
    with pytest.raises(FatalError):
        zfs.mount_dataset(dataset, "/mnt/home", prompter=prompter, gracefully_fail=False)
    skipper = ScriptedPrompter(confirms={Question.CONTINUE_ON_MOUNT_FAILURE: True})
    assert not zfs.mount_dataset(dataset, "/mnt/home", prompter=skipper, gracefully_fail=True)
    assert not dataset.is_mounted()


def test_unmount_failure_keeps_state(runner):
    runner.fail(["zfs", "unmount"])
    dataset = _dataset(mounted="yes")
    assert not zfs.unmount_dataset(dataset)
    assert dataset.is_mounted()


def test_unmount_success_marks_unmounted(runner):
    dataset = _dataset(mounted="yes")
    assert zfs.unmount_dataset(dataset)
    assert not dataset.is_mounted()


def test_import_pool_forced(runner, zfs_member):
    runner.fail(["zpool", "import"], times=1)
    prompter = ScriptedPrompter(confirms={Question.FORCE_IMPORT: True})
    assert zfs.import_pool(zfs_member, "/mnt/root", prompter=prompter)
    assert runner.calls == [
        ["zpool", "import", "1234567890", "-R", "/mnt/root"],
        ["zpool", "import", "1234567890", "-f", "-R", "/mnt/root"],
    ]


def test_import_pool_failure(runner, zfs_member, prompter):
    runner.fail(["zpool", "import"])
    with pytest.raises(FatalError):
        zfs.import_pool(zfs_member, "/mnt/root", prompter=prompter)
    skipper = ScriptedPrompter(confirms={Question.CONTINUE_ON_MOUNT_FAILURE: True})
    assert not zfs.import_pool(zfs_member, "/mnt/root", prompter=skipper, gracefully_fail=True)


def test_export_pool_failure_is_not_fatal(runner, zfs_member, prompter, caplog):
    runner.fail(["zpool", "export"])
    assert not zfs.export_pool(zfs_member, prompter=prompter)
    assert runner.calls == [["zpool", "export", "rpool"]]
    assert "manually" in caplog.text


def test_export_pool_forced(runner, zfs_member):
    runner.fail(["zpool", "export", "rpool"])
    prompter = ScriptedPrompter(confirms={Question.FORCE_EXPORT: True})
    assert zfs.export_pool(zfs_member, prompter=prompter)
    assert runner.calls[-1] == ["zpool", "export", "-f", "rpool"]
