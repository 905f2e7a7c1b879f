# gcsguest

Building blocks for the guest side of a Linux utility VM that hosts
containers, and for the host-side configuration of such a VM.

## What it provides

- `gcsguest.network`: `generate_etc_hosts_content`,
  `generate_resolv_conf_content` (at most six search domains, otherwise
  `ValueError`), `merge_values`, which merges two lists in order and drops
  duplicates from the second, and `instance_id_to_name`, which resolves a VM
  bus adapter instance id to its interface name under
  `/sys/bus/vmbus/devices`.
- `gcsguest.storage.mount`: `FileSystemOps`, the file system and mount calls
  used by the storage modules (mounting and unmounting run the `mount` and
  `umount` commands), and `unmount_path`, which treats a missing or
  unmounted path as success.
- `gcsguest.storage.overlay`, `gcsguest.storage.pmem`,
  `gcsguest.storage.plan9` and `gcsguest.storage.scsi`: each has a `mount`
  function that creates the target directory and removes it again if the
  mount fails. `scsi` also has `controller_lun_to_name` and `unplug_device`.
- `gcsguest.storage.devicemapper`: `create_device` and `remove_device`
  through `/dev/mapper/control`, with `Target`, `linear_target`,
  `build_table`, `CreateFlags` and `DeviceMapperError`.
- `gcsguest.hcsv2.spec`: helpers over OCI specs held as JSON dicts:
  `get_network_namespace_id`, `is_root_readonly`, `is_in_mounts`,
  `parse_passwd`, `parse_group` and `set_user_str`, which accepts `user`,
  `uid`, `user:group`, `uid:gid`, `uid:group` and `user:gid`.
- `gcsguest.hcsv2.namespace`: `NetworkAdapter`, `Namespace` and
  `NamespaceRegistry`, plus the module-level `get_network_namespace`,
  `get_or_add_network_namespace` and `remove_network_namespace`. Calling
  `Namespace.sync` moves the adapters into the assigned pid's namespace by
  running `netnscfg`.
- `gcsguest.hcsv2.sandbox`, `gcsguest.hcsv2.standalone` and
  `gcsguest.hcsv2.workload`: write hostname, hosts and resolv.conf files
  under `/tmp/gcs/cri` or `/tmp/gcs/s`, add bind mounts for them to the spec,
  and remove the spec's `windows` section. A privileged workload receives
  the host devices from `list_host_devices`.
- `gcsguest.client.config`: `Options`, `MappedVirtualDisk` and `Config`.
  `parse_options` reads `lcow.kirdpath`, `lcow.bootparameters` and
  `lcow.timeout`. `Config.generate_default` takes the timeout from the
  options first, then from `OPENGCS_UVM_TIMEOUT_SECONDS`, and otherwise uses
  300 seconds. `Config.validate` checks for `kernel`, `initrd.img` and the
  mapped disks. The module also has `layer_vhd_details` and `copy_file`.
- `gcsguest.tracing`: `Span`, `start_span`, `set_span_status`,
  `LogExporter`, which writes spans to the standard `logging` module, and
  `logger_for`.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

```python
from gcsguest.network import generate_resolv_conf_content, merge_values

servers = merge_values(["8.8.8.8"], ["8.8.4.4", "8.8.8.8"])
print(generate_resolv_conf_content(["a.com"], servers, []), end="")
# search a.com
# nameserver 8.8.8.8
# nameserver 8.8.4.4
```

```python
from gcsguest.client.config import parse_options

opts = parse_options(["lcow.timeout=30", "lcow.kirdpath=/opt/lcow"], environ={})
print(opts.timeout_seconds, opts.kird_path)
# 30 /opt/lcow
```

Mounting, unplugging and device-mapper operations need root privileges on
Linux.

## What it does not do

This is a library with no command of its own. It does not run a guest
service that listens for requests from the host, and it does not create,
start or track containers and their processes. On the host side it
prepares and checks a utility VM's configuration but does not start the VM,
attach disks to it, or run programs inside it.