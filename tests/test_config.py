import os

import pytest

from gcsguest.client import config


def test_parse_options_values():
    opts = config.parse_options(
        ["LCOW.KirdPath=/kird", "lcow.bootparameters=a=b c", "lcow.timeout=42", "noequals"],
        {},
    )
    assert opts.kird_path == "/kird"
    assert opts.boot_parameters == "a=b c"
    assert opts.timeout_seconds == 42


def test_parse_options_default_kird_path():
    opts = config.parse_options([], {"ProgramFiles": "/pf"})
    assert opts.kird_path == os.path.join("/pf", "Linux Containers")
    assert opts.timeout_seconds == 0


@pytest.mark.parametrize(
    ("value", "message"),
    [("abc", "could not be interpreted"), ("-1", "cannot be negative")],
)
def test_parse_options_bad_timeout(value, message):
    with pytest.raises(ValueError, match=message):
        config.parse_options([f"lcow.timeout={value}"], {})


def test_generate_default_option_timeout_wins():
    cfg = config.Config()
    cfg.generate_default(["lcow.timeout=7"], {config.TIMEOUT_ENV: "9"})
    assert cfg.uvm_timeout_seconds == 7


def test_generate_default_environment_timeout():
    cfg = config.Config()
    cfg.generate_default([], {config.TIMEOUT_ENV: "9"})
    assert cfg.uvm_timeout_seconds == 9


def test_generate_default_default_timeout():
    cfg = config.Config()
    cfg.generate_default(["lcow.kirdpath=/k"], {})
    assert cfg.uvm_timeout_seconds == config.DEFAULT_UVM_TIMEOUT_SECONDS
    assert cfg.options.kird_path == "/k"


@pytest.mark.parametrize(
    ("value", "message"),
    [("x", "could not be interpreted"), ("-3", "cannot be negative")],
)
def test_generate_default_bad_environment(value, message):
    with pytest.raises(ValueError, match=message):
        config.Config().generate_default([], {config.TIMEOUT_ENV: value})


def _config_with_kird(path):
    return config.Config(options=config.Options(kird_path=str(path)))


def test_validate_missing_kernel(tmp_path):
    with pytest.raises(FileNotFoundError, match="kernel not found"):
        _config_with_kird(tmp_path).validate()


def test_validate_missing_initrd(tmp_path):
    (tmp_path / "kernel").write_bytes(b"k")
    with pytest.raises(FileNotFoundError, match="initrd not found"):
        _config_with_kird(tmp_path).validate()


def test_validate_mapped_disks(tmp_path):
    (tmp_path / "kernel").write_bytes(b"k")
    (tmp_path / "initrd.img").write_bytes(b"i")
    cfg = _config_with_kird(tmp_path)
    cfg.mapped_virtual_disks = [config.MappedVirtualDisk(str(tmp_path / "missing.vhdx"), "/m")]
    with pytest.raises(FileNotFoundError, match="not found"):
        cfg.validate()

    disk = tmp_path / "disk.vhdx"
    disk.write_bytes(b"d")
    cfg.mapped_virtual_disks = [config.MappedVirtualDisk(str(disk))]
    with pytest.raises(ValueError, match="without a container path"):
        cfg.validate()


def test_layer_vhd_details_layer(tmp_path):
    (tmp_path / "layer.vhd").write_bytes(b"12345")
    assert config.layer_vhd_details(str(tmp_path)) == (str(tmp_path / "layer.vhd"), 5, False)


def test_layer_vhd_details_sandbox(tmp_path):
    (tmp_path / "sandbox.vhdx").write_bytes(b"abc")
    assert config.layer_vhd_details(str(tmp_path)) == (str(tmp_path / "sandbox.vhdx"), 3, True)


def test_layer_vhd_details_missing(tmp_path):
    with pytest.raises(FileNotFoundError, match="could not find layer or sandbox"):
        config.layer_vhd_details(str(tmp_path))


def test_copy_file_round_trip(tmp_path):
    src = tmp_path / "src"
    src.write_bytes(b"payload")
    dest = tmp_path / "dest"
    config.copy_file(str(src), str(dest))
    assert dest.read_bytes() == b"payload"


def test_copy_file_refuses_existing_without_overwrite(tmp_path):
    src = tmp_path / "src"
    src.write_bytes(b"new")
    dest = tmp_path / "dest"
    dest.write_bytes(b"old")
    with pytest.raises(FileExistsError):
        config.copy_file(str(src), str(dest), False)
    assert dest.read_bytes() == b"old"


def test_copy_file_overwrites(tmp_path):
    src = tmp_path / "src"
    src.write_bytes(b"new")
    dest = tmp_path / "dest"
    dest.write_bytes(b"old contents")
    config.copy_file(str(src), str(dest), True)
    assert dest.read_bytes() == b"new"