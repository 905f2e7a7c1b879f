"""Generation of /etc/hosts and resolv.conf content and adapter lookup."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable

MAX_DNS_SEARCHES = 6
INSTANCE_LOOKUP_TIMEOUT = 2.0
DEFAULT_VMBUS_DEVICES = "/sys/bus/vmbus/devices"

_log = logging.getLogger(__name__)

_IPV6_TRAILER = (
    "\n"
    "# The following lines are desirable for IPv6 capable hosts\n"
    "::1     ip6-localhost ip6-loopback\n"
    "fe00::0 ip6-localnet\n"
    "ff00::0 ip6-mcastprefix\n"
    "ff02::1 ip6-allnodes\n"
    "ff02::2 ip6-allrouters\n"
)


def generate_etc_hosts_content(hostname: str) -> str:
    """Return /etc/hosts content for ``hostname``."""
    short_name, dot, _ = hostname.partition(".")
    if dot:
        local_line = f"127.0.0.1 {hostname} {short_name}\n"
    else:
        local_line = f"127.0.0.1 {hostname}\n"
    return "127.0.0.1 localhost\n" + local_line + _IPV6_TRAILER


def generate_resolv_conf_content(
    searches: Iterable[str] | None,
    servers: Iterable[str] | None,
    options: Iterable[str] | None,
) -> str:
    """Return resolv.conf content; raises ValueError on too many searches."""
    searches = list(searches or ())
    servers = list(servers or ())
    options = list(options or ())
    if len(searches) > MAX_DNS_SEARCHES:
        raise ValueError(f"searches has more than {MAX_DNS_SEARCHES} domains")

    lines = []
    if searches:
        lines.append("search " + " ".join(searches))
    lines.extend(f"nameserver {server}" for server in servers)
    if options:
        lines.append("options " + " ".join(options))
    return "".join(line + "\n" for line in lines)


def merge_values(first: Iterable[str] | None, second: Iterable[str] | None) -> list[str]:
    """Merge two lists keeping order and dropping entries of ``second`` already present."""
    merged = list(first or ())
    for value in second or ():
        if value not in merged:
            merged.append(value)
    return merged


def instance_id_to_name(
    instance_id: str, wait: bool, devices_root: str = DEFAULT_VMBUS_DEVICES
) -> str:
    """Resolve a host adapter instance id to its interface name such as ``eth0``.

    With ``wait`` set, a missing device directory is polled for up to
    ``INSTANCE_LOOKUP_TIMEOUT`` seconds.
    """
    instance_id = instance_id.lower()
    net_dir = os.path.join(devices_root, instance_id, "net")
    start = time.monotonic()
    while True:
        try:
            names = sorted(os.listdir(net_dir))
            break
        except FileNotFoundError as err:
            if not wait:
                raise OSError(
                    f"failed to read vmbus network device from /sys filesystem "
                    f"for adapter {instance_id}: {err}"
                ) from err
            time.sleep(0.01)
            if time.monotonic() - start > INSTANCE_LOOKUP_TIMEOUT:
                raise TimeoutError(
                    f"timed out waiting for net adapter after "
                    f"{INSTANCE_LOOKUP_TIMEOUT} seconds"
                ) from err
        except OSError as err:
            raise OSError(
                f"failed to read vmbus network device from /sys filesystem "
                f"for adapter {instance_id}: {err}"
            ) from err

    if not names:
        raise LookupError(f"no interface name found for adapter {instance_id}")
    if len(names) > 1:
        raise LookupError(f"multiple interface names found for adapter {instance_id}")
    ifname = names[0]
    _log.debug("resolved ifname %s", ifname)
    return ifname