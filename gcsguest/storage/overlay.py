"""Overlay file system mounts for container root file systems."""

from __future__ import annotations

import contextlib
from collections.abc import Sequence

from gcsguest.storage.mount import MS_RDONLY, FileSystemOps


def _remove_quietly(ops: FileSystemOps, path: str) -> None:
    with contextlib.suppress(OSError):
        ops.remove_all(path)


def mount(
    layer_paths: Sequence[str],
    upperdir_path: str,
    workdir_path: str,
    rootfs_path: str,
    readonly: bool,
    ops: FileSystemOps | None = None,
) -> None:
    """Mount an overlay of ``layer_paths`` at ``rootfs_path``.

    The upper, work and root directories are created when given, and removed
    again if the mount fails.
    """
    ops = ops if ops is not None else FileSystemOps()
    lowerdir = ":".join(layer_paths)

    if not rootfs_path:
        raise ValueError("cannot have empty rootfsPath")
    if readonly and (upperdir_path or workdir_path):
        raise ValueError(
            f"upperdirPath: {upperdir_path!r}, and workdirPath: {workdir_path!r} "
            "must be empty when readonly==true"
        )

    options = [f"lowerdir={lowerdir}"]
    with contextlib.ExitStack() as cleanup:
        if upperdir_path:
            try:
                ops.mkdir_all(upperdir_path, 0o755)
            except OSError as err:
                raise OSError(f"failed to create upper directory in scratch space: {err}") from err
            cleanup.callback(_remove_quietly, ops, upperdir_path)
            options.append(f"upperdir={upperdir_path}")
        if workdir_path:
            try:
                ops.mkdir_all(workdir_path, 0o755)
            except OSError as err:
                raise OSError(f"failed to create workdir in scratch space: {err}") from err
            cleanup.callback(_remove_quietly, ops, workdir_path)
            options.append(f"workdir={workdir_path}")
        try:
            ops.mkdir_all(rootfs_path, 0o755)
        except OSError as err:
            raise OSError(
                f"failed to create directory for container root filesystem {rootfs_path}: {err}"
            ) from err
        cleanup.callback(_remove_quietly, ops, rootfs_path)

        flags = MS_RDONLY if readonly else 0
        try:
            ops.mount("overlay", rootfs_path, "overlay", flags, ",".join(options))
        except OSError as err:
            raise OSError(
                f"failed to mount container root filesystem using overlayfs {rootfs_path}: {err}"
            ) from err
        cleanup.pop_all()