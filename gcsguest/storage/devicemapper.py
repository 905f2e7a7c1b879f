"""Creation and removal of device-mapper devices through the control device."""

from __future__ import annotations

import contextlib
import enum
import fcntl
import logging
import os
import stat
import struct
from collections.abc import Sequence
from dataclasses import dataclass

CONTROL_PATH = "/dev/mapper/control"
MAPPER_DIR = "/dev/mapper"

_IOC_WRITE = 1
_IOC_READ = 2
_IOC_NRBITS = 8
_IOC_TYPEBITS = 8
_IOC_SIZEBITS = 14
_IOC_TYPESHIFT = _IOC_NRBITS
_IOC_SIZESHIFT = _IOC_TYPESHIFT + _IOC_TYPEBITS
_IOC_DIRSHIFT = _IOC_SIZESHIFT + _IOC_SIZEBITS

DM_IOCTL = 0xFD
DM_IOCTL_SIZE = 312
DM_IOCTL_BASE = (
    (_IOC_READ | _IOC_WRITE) << _IOC_DIRSHIFT
    | DM_IOCTL << _IOC_TYPESHIFT
    | DM_IOCTL_SIZE << _IOC_SIZESHIFT
)

DM_READONLY_FLAG = 1 << 0
DM_SUSPEND_FLAG = 1 << 1
DM_PERSISTENT_DEV_FLAG = 1 << 3

# version[3], data_size, data_start, target_count, open_count, flags,
# event_nr, padding, dev, name[128], uuid[129], padding[7]
_IOCTL_HEADER = struct.Struct("=3IIIIiII4xQ128s129s7x")
# sector_start, length, status, next, target_type[16]
_TARGET_SPEC = struct.Struct("=qqiI16s")
TARGET_SPEC_SIZE = _TARGET_SPEC.size

_FLAGS_OFFSET = 28
_DEV_OFFSET = 40

assert _IOCTL_HEADER.size == DM_IOCTL_SIZE

_log = logging.getLogger(__name__)


class _Op(enum.IntEnum):
    VERSION = 0
    REMOVE_ALL = 1
    LIST_DEVICES = 2
    DEV_CREATE = 3
    DEV_REMOVE = 4
    DEV_RENAME = 5
    DEV_SUSPEND = 6
    DEV_STATUS = 7
    DEV_WAIT = 8
    TABLE_LOAD = 9
    TABLE_CLEAR = 10
    TABLE_DEPS = 11
    TABLE_STATUS = 12


_OP_NAMES = (
    "version",
    "remove all",
    "list devices",
    "device create",
    "device remove",
    "device rename",
    "device suspend",
    "device status",
    "device wait",
    "table load",
    "table clear",
    "table deps",
    "table status",
)


class CreateFlags(enum.IntFlag):
    """Options for :func:`create_device`."""

    NONE = 0
    READ_ONLY = 1


class DeviceMapperError(OSError):
    """A device-mapper ioctl failed."""

    def __init__(self, op: int, err: OSError) -> None:
        super().__init__(err.errno, err.strerror or str(err))
        self.op = op
        self.err = err

    def __str__(self) -> str:
        op_name = _OP_NAMES[self.op] if 0 <= self.op < len(_OP_NAMES) else "<bad operation>"
        return f"device-mapper {op_name}: {self.err}"


@dataclass(frozen=True)
class Target:
    """One entry of a device's target table."""

    target_type: str
    sector_start: int
    length: int
    params: str = ""

    def encoded_size(self) -> int:
        """Bytes taken by this entry: spec, params and a NUL, 8-byte aligned."""
        return (TARGET_SPEC_SIZE + len(self.params.encode()) + 1 + 7) & ~7


def linear_target(sector_start: int, length: int, path: str, device_start: int) -> Target:
    """A target mapping ``length`` sectors of ``path`` starting at ``device_start``."""
    return Target("linear", sector_start, length, f"{path} {device_start}")


def _header(size: int, name: str) -> bytearray:
    buf = bytearray(size)
    _IOCTL_HEADER.pack_into(
        buf, 0, 4, 0, 0, size, 0, 0, 0, 0, 0, 0, name.encode(), b"", 
    )
    return buf


def build_table(name: str, targets: Sequence[Target]) -> bytearray:
    """Build the ioctl buffer that loads ``targets`` as the table of ``name``."""
    size = DM_IOCTL_SIZE + sum(target.encoded_size() for target in targets)
    buf = bytearray(size)
    _IOCTL_HEADER.pack_into(
        buf, 0, 4, 0, 0, size, DM_IOCTL_SIZE, len(targets), 0, 0, 0, 0,
        name.encode(), b"",
    )
    offset = DM_IOCTL_SIZE
    for target in targets:
        entry_size = target.encoded_size()
        _TARGET_SPEC.pack_into(
            buf, offset, target.sector_start, target.length, 0, entry_size,
            target.target_type.encode(),
        )
        params = target.params.encode()
        start = offset + TARGET_SPEC_SIZE
        buf[start:start + len(params)] = params
        offset += entry_size
    return buf


def _ioctl(fd: int, op: int, buf: bytearray) -> None:
    try:
        fcntl.ioctl(fd, op | DM_IOCTL_BASE, buf, True)
    except OSError as err:
        raise DeviceMapperError(op, err) from err


def _open_mapper() -> int:
    fd = os.open(CONTROL_PATH, os.O_RDWR)
    try:
        _ioctl(fd, _Op.VERSION, _header(DM_IOCTL_SIZE, ""))
    except BaseException:
        os.close(fd)
        raise
    return fd


def _remove(fd: int, name: str) -> None:
    _ioctl(fd, _Op.DEV_REMOVE, _header(DM_IOCTL_SIZE, name))


def create_device(name: str, flags: CreateFlags, targets: Sequence[Target]) -> str:
    """Create device ``name`` with ``targets`` and return its device node path."""
    fd = _open_mapper()
    try:
        created = _header(DM_IOCTL_SIZE, name)
        _ioctl(fd, _Op.DEV_CREATE, created)
        try:
            (dev,) = struct.unpack_from("=Q", created, _DEV_OFFSET)

            table = build_table(name, targets)
            if flags & CreateFlags.READ_ONLY:
                (current,) = struct.unpack_from("=I", table, _FLAGS_OFFSET)
                struct.pack_into("=I", table, _FLAGS_OFFSET, current | DM_READONLY_FLAG)
            _ioctl(fd, _Op.TABLE_LOAD, table)
            _ioctl(fd, _Op.DEV_SUSPEND, _header(DM_IOCTL_SIZE, name))
        except BaseException:
            with contextlib.suppress(OSError):
                _remove(fd, name)
            raise

        node = os.path.join(MAPPER_DIR, name)
        with contextlib.suppress(OSError):
            os.remove(node)
        try:
            os.mknod(node, stat.S_IFBLK | 0o600, dev)
        except OSError as err:
            _log.warning("failed to create device node %s: %s", node, err)
            return ""
        return node
    finally:
        os.close(fd)


def remove_device(name: str) -> None:
    """Remove device ``name`` and its device node."""
    fd = _open_mapper()
    try:
        with contextlib.suppress(OSError):
            os.remove(os.path.join(MAPPER_DIR, name))
        _remove(fd, name)
    finally:
        os.close(fd)