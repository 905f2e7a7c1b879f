"""File system operations and unmounting of guest paths."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import subprocess

MS_RDONLY = 1
MNT_FORCE = 1
MNT_DETACH = 2

_log = logging.getLogger(__name__)


class FileSystemOps:
    """The file system and mount operations used by the storage modules.

    Errors are raised as ``OSError`` carrying the closest matching errno.
    """

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def mkdir_all(self, path: str, mode: int) -> None:
        os.makedirs(path, mode, exist_ok=True)

    def remove_all(self, path: str) -> None:
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except FileNotFoundError:
            pass

    def mount(self, source: str, target: str, fstype: str, flags: int, data: str) -> None:
        options = [opt for opt in data.split(",") if opt]
        if flags & MS_RDONLY:
            options.insert(0, "ro")
        command = ["mount", "-t", fstype]
        if options:
            command += ["-o", ",".join(options)]
        command += [source, target]
        self._run(command)

    def unmount(self, target: str, flags: int) -> None:
        command = ["umount"]
        if flags & MNT_FORCE:
            command.append("-f")
        if flags & MNT_DETACH:
            command.append("-l")
        command.append(target)
        self._run(command)

    @staticmethod
    def _run(command: list[str]) -> None:
        # Inheritable descriptors are kept open so mounts such as 9p over
        # trans=fd can reach the descriptors they name.
        result = subprocess.run(
            command, capture_output=True, text=True, close_fds=False, check=False
        )
        if result.returncode == 0:
            return
        message = result.stderr.strip() or f"{command[0]} exited with {result.returncode}"
        if "not mounted" in message:
            code = errno.EINVAL
        elif "does not exist" in message or "No such file" in message:
            code = errno.ENOENT
        elif "ermission denied" in message or "must be superuser" in message:
            code = errno.EPERM
        else:
            code = errno.EIO
        raise OSError(code, message)


def unmount_path(target: str, remove_target: bool, ops: FileSystemOps | None = None) -> None:
    """Unmount ``target`` if it exists and, if asked, remove it afterwards.

    A path that is not mounted is not an error.
    """
    ops = ops if ops is not None else FileSystemOps()
    try:
        ops.stat(target)
    except FileNotFoundError:
        return
    except OSError as err:
        raise OSError(f"failed to determine if path '{target}' exists: {err}") from err

    try:
        ops.unmount(target, 0)
    except OSError as err:
        if err.errno != errno.EINVAL:
            raise OSError(f"failed to unmount path '{target}': {err}") from err
        _log.debug("path %s was not mounted", target)

    if remove_target:
        ops.remove_all(target)