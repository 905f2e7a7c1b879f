"""Preparation of the files and spec of a CRI sandbox container."""

from __future__ import annotations

import os
import socket

from gcsguest.hcsv2.namespace import NamespaceRegistry, get_network_namespace
from gcsguest.hcsv2.spec import Spec, get_network_namespace_id, set_user_str
from gcsguest.network import (
    generate_etc_hosts_content,
    generate_resolv_conf_content,
    merge_values,
)

SANDBOX_ROOT = "/tmp/gcs/cri"
USERSTR_ANNOTATION = "io.microsoft.lcow.userstr"


def get_sandbox_root_dir(sandbox_id: str) -> str:
    return os.path.join(SANDBOX_ROOT, sandbox_id)


def get_sandbox_hostname_path(sandbox_id: str) -> str:
    return os.path.join(get_sandbox_root_dir(sandbox_id), "hostname")


def get_sandbox_hosts_path(sandbox_id: str) -> str:
    return os.path.join(get_sandbox_root_dir(sandbox_id), "hosts")


def get_sandbox_resolv_path(sandbox_id: str) -> str:
    return os.path.join(get_sandbox_root_dir(sandbox_id), "resolv.conf")


def _write(path: str, content: str, what: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(path, 0o644)
    except OSError as err:
        raise OSError(f"failed to write {what} to {path!r}: {err}") from err


def setup_sandbox_container_spec(
    sandbox_id: str, spec: Spec, registry: NamespaceRegistry | None = None
) -> None:
    """Write hostname, hosts and resolv.conf for a sandbox and adjust ``spec``.

    The network namespace named by the spec must already be known. The
    Windows section is removed from ``spec`` afterwards.
    """
    root_dir = get_sandbox_root_dir(sandbox_id)
    try:
        os.makedirs(root_dir, 0o755, exist_ok=True)
    except OSError as err:
        raise OSError(f"failed to create sandbox root directory {root_dir!r}: {err}") from err

    hostname = spec.get("hostname") or socket.gethostname()
    _write(get_sandbox_hostname_path(sandbox_id), hostname + "\n", "hostname")
    _write(get_sandbox_hosts_path(sandbox_id), generate_etc_hosts_content(hostname), "sandbox hosts")

    namespace_id = get_network_namespace_id(spec)
    if registry is None:
        namespace = get_network_namespace(namespace_id)
    else:
        namespace = registry.get(namespace_id)

    searches: list[str] = []
    servers: list[str] = []
    for adapter in namespace.adapters():
        searches = merge_values(searches, adapter.dns_suffix.split(","))
        servers = merge_values(servers, adapter.dns_server_list.split(","))
    try:
        resolv_content = generate_resolv_conf_content(searches, servers, None)
    except ValueError as err:
        raise ValueError(f"failed to generate sandbox resolv.conf content: {err}") from err
    _write(get_sandbox_resolv_path(sandbox_id), resolv_content, "sandbox resolv.conf")

    userstr = (spec.get("annotations") or {}).get(USERSTR_ANNOTATION)
    if userstr is not None:
        set_user_str(spec, userstr)

    spec.pop("windows", None)