"""Helpers that inspect and adjust OCI runtime specs held as JSON dicts."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

Spec = dict[str, Any]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT32_MASK = 0xFFFFFFFF


@dataclass(frozen=True)
class User:
    """An entry of an /etc/passwd file."""

    name: str
    uid: int
    gid: int
    gecos: str = ""
    home: str = ""
    shell: str = ""


@dataclass(frozen=True)
class Group:
    """An entry of an /etc/group file."""

    name: str
    gid: int
    members: list[str] = field(default_factory=list)


def _atoi(text: str) -> int | None:
    return int(text) if _INT_RE.fullmatch(text) else None


def get_network_namespace_id(spec: Spec) -> str:
    """Return the lower-cased Windows network namespace id, or ``""``."""
    windows = spec.get("windows")
    if windows:
        network = windows.get("network")
        if network:
            return str(network.get("networkNamespace", "")).lower()
    return ""


def is_root_readonly(spec: Spec) -> bool:
    """Return whether the spec marks the root file system read-only."""
    root = spec.get("root")
    return bool(root.get("readonly", False)) if root else False


def is_in_mounts(target: str, mounts: Iterable[dict[str, Any]] | None) -> bool:
    """Return whether any mount has ``target`` as its destination."""
    return any(mount.get("destination") == target for mount in mounts or ())


def _lines(path: str) -> Iterable[list[str]]:
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if line and not line.startswith("#"):
                yield line.split(":")


def parse_passwd(path: str, predicate: Callable[[User], bool] | None = None) -> list[User]:
    """Parse the passwd file at ``path``, keeping the users ``predicate`` accepts."""
    users = []
    for parts in _lines(path):
        parts += [""] * (7 - len(parts))
        user = User(
            name=parts[0],
            uid=_atoi(parts[2]) or 0,
            gid=_atoi(parts[3]) or 0,
            gecos=parts[4],
            home=parts[5],
            shell=parts[6],
        )
        if predicate is None or predicate(user):
            users.append(user)
    return users


def parse_group(path: str, predicate: Callable[[Group], bool] | None = None) -> list[Group]:
    """Parse the group file at ``path``, keeping the groups ``predicate`` accepts."""
    groups = []
    for parts in _lines(path):
        parts += [""] * (4 - len(parts))
        members = [member for member in parts[3].split(",") if member]
        group = Group(name=parts[0], gid=_atoi(parts[2]) or 0, members=members)
        if predicate is None or predicate(group):
            groups.append(group)
    return groups


def _root_file(spec: Spec, *parts: str) -> str:
    root = spec.get("root") or {}
    return os.path.join(root.get("path") or "/", *parts)


def _get_user(spec: Spec, predicate: Callable[[User], bool]) -> User:
    users = parse_passwd(_root_file(spec, "etc", "passwd"), predicate)
    if len(users) != 1:
        raise LookupError(f"expected exactly 1 user matched '{len(users)}'")
    return users[0]


def _get_group(spec: Spec, predicate: Callable[[Group], bool]) -> Group:
    groups = parse_group(_root_file(spec, "etc", "group"), predicate)
    if len(groups) != 1:
        raise LookupError(f"expected exactly 1 group matched '{len(groups)}'")
    return groups[0]


def _find_user(spec: Spec, predicate: Callable[[User], bool], what: str) -> User:
    try:
        return _get_user(spec, predicate)
    except (OSError, LookupError) as err:
        raise LookupError(f"failed to find user by {what}: {err}") from err


def _find_group(spec: Spec, predicate: Callable[[Group], bool], what: str) -> Group:
    try:
        return _get_group(spec, predicate)
    except (OSError, LookupError) as err:
        raise LookupError(f"failed to find group by {what}: {err}") from err


def _set_ids(spec: Spec, uid: int, gid: int) -> None:
    process = spec["process"]
    if process.get("user") is None:
        process["user"] = {}
    process["user"]["uid"] = uid & _UINT32_MASK
    process["user"]["gid"] = gid & _UINT32_MASK


def set_user_str(spec: Spec, userstr: str) -> None:
    """Set the process user from an OCI image ``userstr``.

    Accepted forms: user, uid, user:group, uid:gid, uid:group, user:gid.
    Names are resolved against the passwd and group files of the spec root.
    """
    if spec.get("process") is None:
        spec["process"] = {}

    parts = userstr.split(":")
    if len(parts) == 1:
        uid = _atoi(parts[0])
        if uid is None:
            user = _find_user(spec, lambda u: u.name == userstr, f"username: {userstr}")
        else:
            user = _find_user(spec, lambda u: u.uid == uid, f"uid: {uid}")
        _set_ids(spec, user.uid, user.gid)
        return

    if len(parts) == 2:
        user_part, group_part = parts
        uid = _atoi(user_part)
        gid = _atoi(group_part)
        if uid is None:
            uid = _find_user(
                spec, lambda u: u.name == user_part, f"username: {user_part}"
            ).uid
        if gid is None:
            gid = _find_group(
                spec, lambda g: g.name == group_part, f"groupname: {group_part}"
            ).gid
        _set_ids(spec, uid, gid)
        return

    raise ValueError(f"invalid userstr: '{userstr}'")