"""Configuration of a utility VM and helpers for its layer files."""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

DEFAULT_UVM_TIMEOUT_SECONDS = 5 * 60
DEFAULT_VHDX_SIZE_GB = 20
DEFAULT_VHDX_BLOCK_SIZE_MB = 1

TIMEOUT_ENV = "OPENGCS_UVM_TIMEOUT_SECONDS"

_INT_RE = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int | None:
    return int(text) if _INT_RE.fullmatch(text) else None


@dataclass
class Options:
    """Options a client may set for a utility VM."""

    kird_path: str = ""
    timeout_seconds: int = 0
    boot_parameters: str = ""


@dataclass
class MappedVirtualDisk:
    """A host disk to be attached to the utility VM."""

    host_path: str
    container_path: str = ""
    read_only: bool = False
    create_in_utility_vm: bool = False


@dataclass
class Config:
    """Settings for starting a utility VM from a kernel and initrd."""

    name: str = ""
    options: Options = field(default_factory=Options)
    uvm_timeout_seconds: int = 0
    mapped_virtual_disks: list[MappedVirtualDisk] = field(default_factory=list)

    def generate_default(
        self, options: Iterable[str], environ: Mapping[str, str] | None = None
    ) -> None:
        """Fill the options and timeout from ``options`` and the environment.

        The timeout comes from the options first, then from the environment,
        then from the default.
        """
        environ = os.environ if environ is None else environ
        self.options = parse_options(options, environ)

        env_timeout = 0
        raw = environ.get(TIMEOUT_ENV, "")
        if raw:
            parsed = _atoi(raw)
            if parsed is None:
                raise ValueError(f"{TIMEOUT_ENV} could not be interpreted as an integer")
            if parsed < 0:
                raise ValueError(f"{TIMEOUT_ENV} cannot be negative")
            env_timeout = parsed

        if self.options.timeout_seconds:
            self.uvm_timeout_seconds = self.options.timeout_seconds
        elif env_timeout:
            self.uvm_timeout_seconds = env_timeout
        else:
            self.uvm_timeout_seconds = DEFAULT_UVM_TIMEOUT_SECONDS

    def validate(self) -> None:
        """Check that the kernel, initrd and mapped disks are in place."""
        kird_path = self.options.kird_path
        for file_name, label in (("kernel", "kernel"), ("initrd.img", "initrd")):
            try:
                os.stat(os.path.join(kird_path, file_name))
            except FileNotFoundError:
                raise FileNotFoundError(f"{label} not found in {kird_path}") from None
            except OSError:
                pass

        for disk in self.mapped_virtual_disks:
            try:
                os.stat(disk.host_path)
            except OSError as err:
                raise FileNotFoundError(
                    f"mapped virtual disk '{disk.host_path}' not found"
                ) from err
            if not disk.container_path:
                raise ValueError(
                    f"mapped virtual disk '{disk.host_path}' requested without a container path"
                )


def parse_options(
    options: Iterable[str], environ: Mapping[str, str] | None = None
) -> Options:
    """Parse ``lcow.``-prefixed ``key=value`` pairs into :class:`Options`."""
    environ = os.environ if environ is None else environ
    result = Options()
    for option in options:
        key, sep, value = option.partition("=")
        if not sep:
            continue
        key = key.lower()
        if key == "lcow.kirdpath":
            result.kird_path = value
        elif key == "lcow.bootparameters":
            result.boot_parameters = value
        elif key == "lcow.timeout":
            timeout = _atoi(value)
            if timeout is None:
                raise ValueError("lcow.timeout option could not be interpreted as an integer")
            if timeout < 0:
                raise ValueError("lcow.timeout option cannot be negative")
            result.timeout_seconds = timeout

    if not result.kird_path:
        result.kird_path = os.path.join(environ.get("ProgramFiles", ""), "Linux Containers")
    return result


def layer_vhd_details(folder: str) -> tuple[str, int, bool]:
    """Return the path, size and sandbox flag of the VHD in ``folder``.

    A read-only layer is ``layer.vhd``; a read-write sandbox is ``sandbox.vhdx``.
    """
    layer = os.path.join(folder, "layer.vhd")
    try:
        return layer, os.stat(layer).st_size, False
    except OSError:
        pass
    sandbox = os.path.join(folder, "sandbox.vhdx")
    try:
        return sandbox, os.stat(sandbox).st_size, True
    except FileNotFoundError:
        raise FileNotFoundError(f"could not find layer or sandbox in {folder}") from None
    except OSError as err:
        raise OSError(f"error locating layer or sandbox in {folder}: {err}") from err


def copy_file(src_file: str, dest_file: str, overwrite: bool = False) -> None:
    """Copy ``src_file`` to ``dest_file``; without ``overwrite`` the target must not exist."""
    mode = "wb" if overwrite else "xb"
    try:
        with open(src_file, "rb") as source, open(dest_file, mode) as dest:
            shutil.copyfileobj(source, dest)
        shutil.copymode(src_file, dest_file)
    except FileExistsError as err:
        raise FileExistsError(
            f"failed to copy file from '{src_file}' to '{dest_file}': {err}"
        ) from err
    except OSError as err:
        raise OSError(f"failed to copy file from '{src_file}' to '{dest_file}': {err}") from err