"""In-memory network namespaces and the adapters assigned to them."""

from __future__ import annotations

import json
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass

from gcsguest.network import instance_id_to_name

IfnameResolver = Callable[[str, bool], str]
AdapterConfigurator = Callable[[str, int, str], None]


@dataclass
class NetworkAdapter:
    """Settings of a network adapter added to the guest by the host."""

    adapter_id: str
    namespace_id: str = ""
    ip_address: str = ""
    gateway_address: str = ""
    prefix_length: int = 0
    enable_low_metric: bool = False
    encap_overhead: int = 0
    dns_suffix: str = ""
    dns_server_list: str = ""


class NamespaceNotFoundError(LookupError):
    """No namespace with the requested id is known."""


def _resolve_ifname(adapter_id: str, wait: bool) -> str:
    return instance_id_to_name(adapter_id, wait)


def _run_netnscfg(ifname: str, pid: int, config: str) -> None:
    command = ["netnscfg", "-if", ifname, "-nspid", str(pid), "-cfg", config]
    try:
        result = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as err:
        raise OSError(f"failed to run netnscfg for {ifname}: {err}") from err
    if result.returncode != 0:
        raise OSError(
            f"netnscfg exited with {result.returncode}: {result.stdout.strip()}"
        )


def _adapter_config(adapter: NetworkAdapter) -> str:
    return json.dumps(
        {
            "NatEnabled": adapter.ip_address != "",
            "AllocatedIPAddress": adapter.ip_address,
            "HostIPAddress": adapter.gateway_address,
            "HostIPPrefixLength": adapter.prefix_length,
            "EnableLowMetric": adapter.enable_low_metric,
            "EncapOverhead": adapter.encap_overhead,
        },
        separators=(",", ":"),
    )


@dataclass
class _NicInNamespace:
    adapter: NetworkAdapter
    ifname: str
    assigned_pid: int = 0


class Namespace:
    """Maps the adapters of one host network namespace to a container pid."""

    def __init__(
        self,
        namespace_id: str,
        resolve_ifname: IfnameResolver | None = None,
        configure: AdapterConfigurator | None = None,
    ) -> None:
        self.id = namespace_id
        self.pid = 0
        self._lock = threading.Lock()
        self._nics: list[_NicInNamespace] = []
        self._resolve_ifname = resolve_ifname or _resolve_ifname
        self._configure = configure or _run_netnscfg

    def __repr__(self) -> str:
        return f"Namespace(id={self.id!r}, pid={self.pid})"

    @property
    def has_adapters(self) -> bool:
        with self._lock:
            return bool(self._nics)

    def assign_container_pid(self, pid: int) -> None:
        """Assign ``pid``; adapters move only on a later :meth:`sync`."""
        with self._lock:
            if self.pid != 0:
                raise ValueError(f"previously assigned container pid: {self.pid}")
            self.pid = pid

    def adapters(self) -> list[NetworkAdapter]:
        """Return a copy of the list of adapters at the time of the call."""
        with self._lock:
            return [nic.adapter for nic in self._nics]

    def add_adapter(self, adapter: NetworkAdapter) -> None:
        """Add ``adapter``; it moves into the namespace only on :meth:`sync`."""
        with self._lock:
            wanted = adapter.adapter_id.lower()
            if any(nic.adapter.adapter_id.lower() == wanted for nic in self._nics):
                raise ValueError(
                    f"adapter with id: '{adapter.adapter_id}' already present in namespace"
                )
            ifname = self._resolve_ifname(adapter.adapter_id, True)
            self._nics.append(_NicInNamespace(adapter, ifname))

    def remove_adapter(self, adapter_id: str) -> None:
        """Remove the adapter matching ``adapter_id``; an unknown id is ignored."""
        wanted = adapter_id.lower()
        with self._lock:
            for index, nic in enumerate(self._nics):
                if nic.adapter.adapter_id.lower() == wanted:
                    del self._nics[index]
                    break

    def sync(self) -> None:
        """Move every adapter into the network namespace of the assigned pid."""
        with self._lock:
            if self.pid == 0:
                return
            for nic in self._nics:
                try:
                    self._configure(nic.ifname, self.pid, _adapter_config(nic.adapter))
                except OSError as err:
                    raise OSError(
                        f"failed to configure adapter aid: {nic.adapter.adapter_id}, "
                        f"if id: {nic.ifname} {err}"
                    ) from err
                nic.assigned_pid = self.pid


class NamespaceRegistry:
    """The set of namespaces known to the guest, keyed by lower-cased id."""

    def __init__(
        self,
        resolve_ifname: IfnameResolver | None = None,
        configure: AdapterConfigurator | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._namespaces: dict[str, Namespace] = {}
        self._resolve_ifname = resolve_ifname
        self._configure = configure

    def __contains__(self, namespace_id: object) -> bool:
        if not isinstance(namespace_id, str):
            return False
        with self._lock:
            return namespace_id.lower() in self._namespaces

    def get(self, namespace_id: str) -> Namespace:
        """Return the namespace ``namespace_id`` or raise NamespaceNotFoundError."""
        key = namespace_id.lower()
        with self._lock:
            try:
                return self._namespaces[key]
            except KeyError:
                raise NamespaceNotFoundError(f"namespace '{key}' not found") from None

    def get_or_add(self, namespace_id: str) -> Namespace:
        """Return the namespace ``namespace_id``, creating it when missing."""
        key = namespace_id.lower()
        with self._lock:
            namespace = self._namespaces.get(key)
            if namespace is None:
                namespace = Namespace(key, self._resolve_ifname, self._configure)
                self._namespaces[key] = namespace
            return namespace

    def remove(self, namespace_id: str) -> None:
        """Forget ``namespace_id``; refuses while it still holds adapters."""
        key = namespace_id.lower()
        with self._lock:
            namespace = self._namespaces.get(key)
            if namespace is None:
                return
            if namespace.has_adapters:
                raise RuntimeError(f"network namespace '{key}' contains adapters")
            del self._namespaces[key]


_registry = NamespaceRegistry()


def get_network_namespace(namespace_id: str) -> Namespace:
    """Look up ``namespace_id`` in the guest-wide registry."""
    return _registry.get(namespace_id)


def get_or_add_network_namespace(namespace_id: str) -> Namespace:
    """Look up or create ``namespace_id`` in the guest-wide registry."""
    return _registry.get_or_add(namespace_id)


def remove_network_namespace(namespace_id: str) -> None:
    """Remove ``namespace_id`` from the guest-wide registry."""
    _registry.remove(namespace_id)