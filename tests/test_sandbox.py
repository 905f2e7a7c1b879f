import os
import shutil
import uuid

import pytest

from gcsguest.hcsv2.namespace import NamespaceNotFoundError, NamespaceRegistry, NetworkAdapter
from gcsguest.hcsv2.sandbox import (
    get_sandbox_hostname_path,
    get_sandbox_hosts_path,
    get_sandbox_resolv_path,
    get_sandbox_root_dir,
    setup_sandbox_container_spec,
)
from gcsguest.network import generate_etc_hosts_content


@pytest.fixture
def sandbox_id():
    sid = f"test-{uuid.uuid4()}"
    yield sid
    shutil.rmtree(get_sandbox_root_dir(sid), ignore_errors=True)


@pytest.fixture
def registry():
    reg = NamespaceRegistry(resolve_ifname=lambda adapter_id, wait: "eth0")
    ns = reg.get_or_add("ns1")
    ns.add_adapter(
        NetworkAdapter(
            adapter_id="a1",
            dns_suffix="a.com,b.com",
            dns_server_list="8.8.8.8,8.8.4.4",
        )
    )
    return reg


def _spec(**extra):
    spec = {"windows": {"network": {"networkNamespace": "NS1"}}}
    spec.update(extra)
    return spec


def _read(path):
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def test_paths():
    assert get_sandbox_root_dir("abc") == "/tmp/gcs/cri/abc"
    assert get_sandbox_hostname_path("abc") == "/tmp/gcs/cri/abc/hostname"
    assert get_sandbox_hosts_path("abc") == "/tmp/gcs/cri/abc/hosts"
    assert get_sandbox_resolv_path("abc") == "/tmp/gcs/cri/abc/resolv.conf"


def test_setup_writes_files(sandbox_id, registry):
    spec = _spec(hostname="myhost")
    setup_sandbox_container_spec(sandbox_id, spec, registry)
    assert _read(get_sandbox_hostname_path(sandbox_id)) == "myhost\n"
    assert _read(get_sandbox_hosts_path(sandbox_id)) == generate_etc_hosts_content("myhost")
    assert _read(get_sandbox_resolv_path(sandbox_id)) == (
        "search a.com b.com\nnameserver 8.8.8.8\nnameserver 8.8.4.4\n"
    )
    assert "windows" not in spec


def test_setup_merges_adapters_without_duplicates(sandbox_id, registry):
    registry.get("ns1").add_adapter(
        NetworkAdapter(adapter_id="a2", dns_suffix="b.com", dns_server_list="8.8.8.8")
    )
    setup_sandbox_container_spec(sandbox_id, _spec(hostname="h"), registry)
    content = _read(get_sandbox_resolv_path(sandbox_id))
    assert content.count("nameserver 8.8.8.8") == 1
    assert content.splitlines()[0] == "search a.com b.com"


def test_setup_missing_namespace_raises(sandbox_id):
    empty = NamespaceRegistry()
    with pytest.raises(NamespaceNotFoundError):
        setup_sandbox_container_spec(sandbox_id, _spec(hostname="h"), empty)


def test_setup_applies_userstr(sandbox_id, registry, tmp_path):
    etc = tmp_path / "etc"
    etc.mkdir()
    (etc / "passwd").write_text("app:x:1000:1000::/home/app:/bin/sh\n")
    (etc / "group").write_text("app:x:1000:\n")
    spec = _spec(
        hostname="h",
        root={"path": str(tmp_path)},
        annotations={"io.microsoft.lcow.userstr": "app"},
    )
    setup_sandbox_container_spec(sandbox_id, spec, registry)
    assert spec["process"]["user"]["uid"] == 1000
    assert spec["process"]["user"]["gid"] == 1000


def test_setup_without_hostname_uses_system_hostname(sandbox_id, registry):
    setup_sandbox_container_spec(sandbox_id, _spec(), registry)
    hostname = _read(get_sandbox_hostname_path(sandbox_id))
    assert hostname.endswith("\n")
    assert os.path.isfile(get_sandbox_hosts_path(sandbox_id))
    assert f"127.0.0.1 {hostname.strip()}" in _read(get_sandbox_hosts_path(sandbox_id))