import os

import pytest

from gcsguest.hcsv2 import workload
from gcsguest.hcsv2.sandbox import (
    get_sandbox_hostname_path,
    get_sandbox_hosts_path,
    get_sandbox_resolv_path,
    get_sandbox_root_dir,
)


def test_workload_root_dir_is_under_sandbox():
    assert workload.get_workload_root_dir("sb", "c1") == os.path.join(
        get_sandbox_root_dir("sb"), "c1"
    )


def test_hostname_is_rejected():
    with pytest.raises(ValueError, match="must not change hostname"):
        workload.setup_workload_container_spec("sb", "c1", {"hostname": "other"})


def test_mounts_point_at_sandbox_files():
    spec = {"windows": {}}
    workload.setup_workload_container_spec("sb", "c1", spec)
    assert [(m["destination"], m["source"]) for m in spec["mounts"]] == [
        ("/etc/hostname", get_sandbox_hostname_path("sb")),
        ("/etc/hosts", get_sandbox_hosts_path("sb")),
        ("/etc/resolv.conf", get_sandbox_resolv_path("sb")),
    ]
    assert "windows" not in spec


def test_readonly_root_and_existing_mount():
    existing = {"destination": "/etc/resolv.conf", "source": "/mine"}
    spec = {"root": {"readonly": True}, "mounts": [existing]}
    workload.setup_workload_container_spec("sb", "c1", spec)
    assert len(spec["mounts"]) == 3
    assert spec["mounts"][0] is existing
    assert all(m["options"] == ["bind", "ro"] for m in spec["mounts"][1:])


def test_privileged_merges_devices():
    spec = {
        "annotations": {workload.PRIVILEGED_ANNOTATION: "true"},
        "linux": {"devices": [{"path": "/dev/null", "type": "c", "major": 9, "minor": 9}]},
    }
    devices = [
        workload.Device("/dev/null", "c", 1, 3),
        workload.Device("/dev/sda", "b", 8, 0, uid=5, gid=6),
        workload.Device("/dev/link", "c", 0, 0),
    ]
    workload.setup_workload_container_spec("sb", "c1", spec, devices)
    paths = [d["path"] for d in spec["linux"]["devices"]]
    assert paths == ["/dev/null", "/dev/sda"]
    assert spec["linux"]["devices"][0] == devices[0].to_spec()
    assert spec["linux"]["devices"][1]["uid"] == 5
    assert spec["linux"]["resources"]["devices"] == [{"allow": True, "access": "rwm"}]


def test_unprivileged_ignores_devices():
    spec = {"linux": {"devices": []}}
    workload.setup_workload_container_spec("sb", "c1", spec, [workload.Device("/dev/sda", "b", 8, 0)])
    assert spec["linux"]["devices"] == []
    assert "resources" not in spec["linux"]


def test_userstr_sets_process_user(tmp_path):
    (tmp_path / "etc").mkdir()
    (tmp_path / "etc" / "passwd").write_text("alice:x:1000:1001::/home/alice:/bin/sh\n")
    spec = {"root": {"path": str(tmp_path)}, "annotations": {workload.USERSTR_ANNOTATION: "alice"}}
    workload.setup_workload_container_spec("sb", "c1", spec)
    assert spec["process"]["user"] == {"uid": 1000, "gid": 1001}


def test_list_host_devices_finds_fifo_only(tmp_path):
    os.mkfifo(tmp_path / "pipe")
    (tmp_path / "regular").write_text("x")
    os.symlink(tmp_path / "regular", tmp_path / "link")
    (tmp_path / "pts").mkdir()
    os.mkfifo(tmp_path / "pts" / "hidden")
    sub = tmp_path / "sub"
    sub.mkdir()
    os.mkfifo(sub / "inner")

    found = workload.list_host_devices(str(tmp_path))
    assert [d.path for d in found] == [str(tmp_path / "pipe"), str(sub / "inner")]
    assert all(d.type == "p" for d in found)