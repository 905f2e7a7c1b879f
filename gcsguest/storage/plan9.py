"""Mounting of Plan 9 shares served over a host transport."""

from __future__ import annotations

import contextlib
import os
from typing import Protocol

from gcsguest.storage.mount import MS_RDONLY, FileSystemOps


class _Connection(Protocol):
    def fileno(self) -> int: ...

    def close(self) -> None: ...


class _Transport(Protocol):
    def dial(self, port: int) -> _Connection: ...


def _remove_quietly(ops: FileSystemOps, path: str) -> None:
    with contextlib.suppress(OSError):
        ops.remove_all(path)


def mount(
    vsock: _Transport,
    target: str,
    share: str,
    port: int,
    readonly: bool,
    ops: FileSystemOps | None = None,
) -> None:
    """Dial ``port`` on ``vsock`` and mount the 9p share ``share`` at ``target``.

    ``target`` is created, and removed again if any later step fails.
    """
    ops = ops if ops is not None else FileSystemOps()
    ops.mkdir_all(target, 0o700)
    with contextlib.ExitStack() as cleanup:
        cleanup.callback(_remove_quietly, ops, target)

        try:
            conn = vsock.dial(port)
        except OSError as err:
            raise OSError(f"could not connect to plan9 server for {target}: {err}") from err
        try:
            fd = os.dup(conn.fileno())
        except OSError as err:
            raise OSError(
                f"could not get file for plan9 connection for {target}: {err}"
            ) from err
        finally:
            conn.close()

        try:
            os.set_inheritable(fd, True)
            flags = 0
            data = f"trans=fd,rfdno={fd},wfdno={fd}"
            if readonly:
                flags |= MS_RDONLY
                data += ",noload"
            if share:
                data += f",aname={share}"
            try:
                ops.mount(target, target, "9p", flags, data)
            except OSError as err:
                raise OSError(
                    f"failed to mount directory for mapped directory {target}: {err}"
                ) from err
        finally:
            os.close(fd)
        cleanup.pop_all()