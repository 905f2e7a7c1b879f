"""Mounting of read-only persistent memory devices."""

from __future__ import annotations

import contextlib

from gcsguest.storage.mount import MS_RDONLY, FileSystemOps


def mount(device: int, target: str, ops: FileSystemOps | None = None) -> None:
    """Mount ``/dev/pmem<device>`` read-only as dax ext4 at ``target``.

    ``target`` is created, and removed again if the mount fails.
    """
    ops = ops if ops is not None else FileSystemOps()
    ops.mkdir_all(target, 0o700)
    try:
        ops.mount(f"/dev/pmem{device}", target, "ext4", MS_RDONLY, "noload,dax")
    except BaseException:
        with contextlib.suppress(OSError):
            ops.remove_all(target)
        raise