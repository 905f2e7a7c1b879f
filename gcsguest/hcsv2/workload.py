"""Preparation of the spec of a CRI workload container inside a sandbox."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from gcsguest.hcsv2.sandbox import (
    get_sandbox_hostname_path,
    get_sandbox_hosts_path,
    get_sandbox_resolv_path,
    get_sandbox_root_dir,
)
from gcsguest.hcsv2.spec import Spec, is_in_mounts, is_root_readonly, set_user_str

PRIVILEGED_ANNOTATION = "io.microsoft.virtualmachine.lcow.privileged"
USERSTR_ANNOTATION = "io.microsoft.lcow.userstr"

_IGNORED_DEVICE_DIRS = frozenset({"pts", "shm", "fd", "mqueue", ".lxc", ".lxd-mounts", ".udev"})

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Device:
    """A device node found on the host."""

    path: str
    type: str
    major: int
    minor: int
    uid: int = 0
    gid: int = 0
    file_mode: int = 0

    def to_spec(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.type,
            "major": self.major,
            "minor": self.minor,
            "uid": self.uid,
            "gid": self.gid,
        }


def get_workload_root_dir(sandbox_id: str, container_id: str) -> str:
    return os.path.join(get_sandbox_root_dir(sandbox_id), container_id)


def _device_kind(mode: int) -> str | None:
    if stat.S_ISBLK(mode):
        return "b"
    if stat.S_ISCHR(mode):
        return "c"
    if stat.S_ISFIFO(mode):
        return "p"
    return None


def list_host_devices(root: str = "/dev") -> list[Device]:
    """Return the block, character and fifo devices found below ``root``."""
    devices: list[Device] = []
    with os.scandir(root) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        if entry.is_dir(follow_symlinks=False):
            if entry.name not in _IGNORED_DEVICE_DIRS:
                devices.extend(list_host_devices(entry.path))
            continue
        if entry.name == "console":
            continue
        try:
            info = os.lstat(entry.path)
        except FileNotFoundError:
            continue
        kind = _device_kind(info.st_mode)
        if kind is None:
            continue
        devices.append(
            Device(
                path=entry.path,
                type=kind,
                major=os.major(info.st_rdev),
                minor=os.minor(info.st_rdev),
                uid=info.st_uid,
                gid=info.st_gid,
                file_mode=stat.S_IMODE(info.st_mode),
            )
        )
    return devices


def _bind_mount(spec: Spec, destination: str, source: str) -> dict[str, Any]:
    options = ["bind"]
    if is_root_readonly(spec):
        options.append("ro")
    return {"destination": destination, "type": "bind", "source": source, "options": options}


def _add_host_devices(spec: Spec, host_devices: Iterable[Device]) -> None:
    linux = spec.get("linux")
    if linux is None:
        linux = spec["linux"] = {}
    devices = linux.get("devices")
    if devices is None:
        devices = linux["devices"] = []

    for host_device in host_devices:
        if host_device.major == 0 and host_device.minor == 0:
            # Most likely a symbolic link or fifo; not a usable device.
            continue
        wanted = host_device.to_spec()
        for index, existing in enumerate(devices):
            if existing.get("path") == wanted["path"]:
                devices[index] = wanted
                break
            if (
                existing.get("type") == wanted["type"]
                and existing.get("major") == wanted["major"]
                and existing.get("minor") == wanted["minor"]
            ):
                _log.warning(
                    "The same type '%s', major '%d' and minor '%d', should not be used "
                    "for multiple devices.",
                    wanted["type"],
                    wanted["major"],
                    wanted["minor"],
                )
        else:
            devices.append(wanted)

    resources = linux.get("resources")
    if resources is None:
        resources = linux["resources"] = {}
    resources["devices"] = [{"allow": True, "access": "rwm"}]


def setup_workload_container_spec(
    sandbox_id: str,
    container_id: str,
    spec: Spec,
    host_devices: Iterable[Device] | None = None,
) -> None:
    """Bind the sandbox's hostname, hosts and resolv.conf into a workload ``spec``.

    A privileged workload gets every host device; ``host_devices`` overrides
    the devices listed from ``/dev``. The Windows section is removed afterwards.
    """
    if spec.get("hostname"):
        raise ValueError(f"workload container must not change hostname: {spec['hostname']}")

    mounts = spec.get("mounts")
    if mounts is None:
        mounts = spec["mounts"] = []
    for destination, source in (
        ("/etc/hostname", get_sandbox_hostname_path(sandbox_id)),
        ("/etc/hosts", get_sandbox_hosts_path(sandbox_id)),
        ("/etc/resolv.conf", get_sandbox_resolv_path(sandbox_id)),
    ):
        if not is_in_mounts(destination, mounts):
            mounts.append(_bind_mount(spec, destination, source))

    annotations = spec.get("annotations") or {}
    if annotations.get(PRIVILEGED_ANNOTATION) == "true":
        _log.debug("'%s' set for privileged container", PRIVILEGED_ANNOTATION)
        devices = list_host_devices() if host_devices is None else host_devices
        _add_host_devices(spec, devices)

    userstr = annotations.get(USERSTR_ANNOTATION)
    if userstr is not None:
        set_user_str(spec, userstr)

    spec.pop("windows", None)