"""Mounting and unplugging of SCSI disks attached to the guest."""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import time
from collections.abc import Callable

from gcsguest.storage.mount import MS_RDONLY, FileSystemOps

DEVICE_LOOKUP_TIMEOUT = 2.0
DEFAULT_SCSI_DEVICES = "/sys/bus/scsi/devices"

_POLL_INTERVAL = 0.01

_log = logging.getLogger(__name__)


def _scsi_id(controller: int, lun: int) -> str:
    return f"0:0:{controller}:{lun}"


def controller_lun_to_name(
    controller: int,
    lun: int,
    sys_root: str = DEFAULT_SCSI_DEVICES,
    timeout: float = DEVICE_LOOKUP_TIMEOUT,
) -> str:
    """Return the ``/dev/sd*`` path of the disk at ``controller``/``lun``.

    The block directory is polled until it appears or ``timeout`` seconds pass.
    """
    scsi_id = _scsi_id(controller, lun)
    block_dir = os.path.join(sys_root, scsi_id, "block")
    start = time.monotonic()
    while True:
        try:
            names = sorted(os.listdir(block_dir))
            break
        except OSError as err:
            if time.monotonic() - start > timeout:
                raise OSError(
                    f"failed to retrieve SCSI device names from filesystem: {err}"
                ) from err
        time.sleep(_POLL_INTERVAL)

    if not names:
        raise LookupError(f'no matching device names found for SCSI ID "{scsi_id}"')
    if len(names) > 1:
        raise LookupError(f'more than one block device could match SCSI ID "{scsi_id}"')

    device_path = os.path.join("/dev", names[0])
    _log.debug("found device path %s", device_path)
    return device_path


def mount(
    controller: int,
    lun: int,
    target: str,
    readonly: bool,
    ops: FileSystemOps | None = None,
    lookup: Callable[[int, int], str] | None = None,
) -> None:
    """Mount the ext4 disk at ``controller``/``lun`` on ``target``.

    ``target`` is created, and removed again if the lookup or mount fails.
    While the device node has not surfaced yet the mount is retried.
    """
    ops = ops if ops is not None else FileSystemOps()
    lookup = lookup if lookup is not None else controller_lun_to_name

    ops.mkdir_all(target, 0o700)
    try:
        source = lookup(controller, lun)
        flags = MS_RDONLY if readonly else 0
        data = "noload" if readonly else ""

        start = time.monotonic()
        while True:
            try:
                ops.mount(source, target, "ext4", flags, data)
                break
            except OSError as err:
                if (
                    err.errno == errno.ENOENT
                    and time.monotonic() - start < DEVICE_LOOKUP_TIMEOUT
                ):
                    time.sleep(_POLL_INTERVAL)
                    continue
                raise
    except BaseException:
        with contextlib.suppress(OSError):
            ops.remove_all(target)
        raise


def unplug_device(controller: int, lun: int, sys_root: str = DEFAULT_SCSI_DEVICES) -> None:
    """Ask the guest to unplug the disk at ``controller``/``lun``.

    A disk that is not attached is not an error.
    """
    delete_path = os.path.join(sys_root, _scsi_id(controller, lun), "delete")
    try:
        fd = os.open(delete_path, os.O_WRONLY)
    except FileNotFoundError:
        return
    with os.fdopen(fd, "wb") as handle:
        handle.write(b"1\n")