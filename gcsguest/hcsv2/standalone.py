"""Preparation of the files and spec of a standalone (non-CRI) container."""

from __future__ import annotations

import os
import socket
from typing import Any

from gcsguest.hcsv2.namespace import NamespaceRegistry, get_or_add_network_namespace
from gcsguest.hcsv2.spec import (
    Spec,
    get_network_namespace_id,
    is_in_mounts,
    is_root_readonly,
)
from gcsguest.network import (
    generate_etc_hosts_content,
    generate_resolv_conf_content,
    merge_values,
)

STANDALONE_ROOT = "/tmp/gcs/s"


def get_standalone_root_dir(container_id: str) -> str:
    return os.path.join(STANDALONE_ROOT, container_id)


def get_standalone_hostname_path(container_id: str) -> str:
    return os.path.join(get_standalone_root_dir(container_id), "hostname")


def get_standalone_hosts_path(container_id: str) -> str:
    return os.path.join(get_standalone_root_dir(container_id), "hosts")


def get_standalone_resolv_path(container_id: str) -> str:
    return os.path.join(get_standalone_root_dir(container_id), "resolv.conf")


def _write(path: str, content: str, what: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(path, 0o644)
    except OSError as err:
        raise OSError(f"failed to write {what} to {path!r}: {err}") from err


def _bind_mount(spec: Spec, destination: str, source: str) -> dict[str, Any]:
    options = ["bind"]
    if is_root_readonly(spec):
        options.append("ro")
    return {"destination": destination, "type": "bind", "source": source, "options": options}


def setup_standalone_container_spec(
    container_id: str, spec: Spec, registry: NamespaceRegistry | None = None
) -> None:
    """Write hostname, hosts and resolv.conf for a container and bind them into ``spec``.

    Files the spec already mounts are left alone. The Windows section is
    removed from ``spec`` afterwards.
    """
    root_dir = get_standalone_root_dir(container_id)
    try:
        os.makedirs(root_dir, 0o755, exist_ok=True)
    except OSError as err:
        raise OSError(f"failed to create container root directory {root_dir!r}: {err}") from err

    hostname = spec.get("hostname") or socket.gethostname()
    mounts = spec.get("mounts")
    if mounts is None:
        mounts = spec["mounts"] = []

    if not is_in_mounts("/etc/hostname", mounts):
        path = get_standalone_hostname_path(container_id)
        _write(path, hostname + "\n", "hostname")
        mounts.append(_bind_mount(spec, "/etc/hostname", path))

    if not is_in_mounts("/etc/hosts", mounts):
        path = get_standalone_hosts_path(container_id)
        _write(path, generate_etc_hosts_content(hostname), "standalone hosts")
        mounts.append(_bind_mount(spec, "/etc/hosts", path))

    if not is_in_mounts("/etc/resolv.conf", mounts):
        namespace_id = get_network_namespace_id(spec)
        if registry is None:
            namespace = get_or_add_network_namespace(namespace_id)
        else:
            namespace = registry.get_or_add(namespace_id)
        # Only the DNS servers of the adapters are carried into resolv.conf.
        searches: list[str] = []
        servers: list[str] = []
        for adapter in namespace.adapters():
            servers = merge_values(servers, adapter.dns_server_list.split(","))
        try:
            content = generate_resolv_conf_content(searches, servers, None)
        except ValueError as err:
            raise ValueError(
                f"failed to generate standalone resolv.conf content: {err}"
            ) from err
        path = get_standalone_resolv_path(container_id)
        _write(path, content, "standalone resolv.conf")
        mounts.append(_bind_mount(spec, "/etc/resolv.conf", path))

    spec.pop("windows", None)