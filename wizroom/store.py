# store.py
import ipaddress
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Union

from wizroom import config
from wizroom.errors import (
    PersistenceError,
    RegistryLoadError,
    RoomExists,
    RoomNotFound,
    ValidationError,
)
from wizroom.wiz_protocol import BulbAddress

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


@dataclass(frozen=True)
class Room:
    name: str
    bulbs: FrozenSet[BulbAddress] = frozenset()

    def ips(self) -> List[str]:
        return sorted((b.ip for b in self.bulbs), key=lambda ip: ipaddress.IPv4Address(ip))

    def as_dict(self) -> dict:
        return {"name": self.name, "lights": self.ips()}


def _classful_network(ip: ipaddress.IPv4Address) -> Optional[ipaddress.IPv4Network]:
    first = int(ip) >> 24
    if 1 <= first <= 126:
        prefix = 8
    elif 128 <= first <= 191:
        prefix = 16
    elif 192 <= first <= 223:
        prefix = 24
    else:
        return None
    return ipaddress.IPv4Network(f"{ip}/{prefix}", strict=False)


def validate_lan_address(address: BulbAddress) -> None:
    """Refuse addresses no bulb on the local network can have."""
    ip = ipaddress.IPv4Address(address.ip)
    # 192.0.2.0/24 is reserved for documentation; allow it so examples work
    if ip in ipaddress.IPv4Network("192.0.2.0/24"):
        return
    if ip.is_link_local or ip.is_loopback:
        reason = "a local ip"
    elif ip.is_unspecified:
        reason = "unspecified"
    elif ip == ipaddress.IPv4Address("255.255.255.255"):
        reason = "a broadcast address"
    elif ip.is_multicast:
        reason = "a multicast address"
    elif not ip.is_private:
        reason = "a public ip"
    else:
        net = _classful_network(ip)
        if net is None:
            reason = "reserved"
        elif ip == net.network_address:
            reason = "the subnet's network address"
        elif ip == net.broadcast_address:
            reason = "the subnet's broadcast address"
        else:
            return
    raise ValidationError(f"light with ip {ip} is invalid because the IP is {reason}")


def _validate_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("room name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"room name is longer than {MAX_NAME_LENGTH} characters")
    return name


def _parse_document(text: str, path: Path) -> Dict[str, FrozenSet[BulbAddress]]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise RegistryLoadError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RegistryLoadError(f"{path} must hold a JSON object of rooms")

    rooms = {}
    for name, ips in data.items():
        if not isinstance(ips, list):
            raise RegistryLoadError(f"{path}: room {name!r} must map to a list of addresses")
        try:
            rooms[name] = frozenset(BulbAddress(ip) for ip in ips)
        except ValidationError as exc:
            raise RegistryLoadError(f"{path}: room {name!r}: {exc}") from exc
    return rooms


class RoomRegistry:
    """Room name -> bulb addresses, mirrored to a JSON file.

    Every mutation takes the registry lock, writes the whole new map to a
    temporary file, renames it over the registry file and only then swaps the
    in-memory map, so memory never runs ahead of disk.
    """

    def __init__(self, path: Union[str, Path], rooms: Optional[Dict[str, FrozenSet[BulbAddress]]] = None):
        self.path = Path(path)
        self._rooms: Dict[str, FrozenSet[BulbAddress]] = dict(rooms or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Union[str, Path] = config.STORAGE_PATH) -> "RoomRegistry":
        path = Path(path)
        if not path.exists():
            logger.info("No registry at %s, starting empty", path)
            return cls(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise RegistryLoadError(f"cannot read {path}: {exc}") from exc
        rooms = _parse_document(text, path)
        logger.info("Loaded %d room(s) from %s", len(rooms), path)
        return cls(path, rooms)

    # reads

    def get(self, name: str) -> Room:
        bulbs = self._rooms.get(name)
        if bulbs is None:
            raise RoomNotFound(name)
        return Room(name, bulbs)

    def list(self) -> List[Room]:
        rooms = self._rooms
        return [Room(name, rooms[name]) for name in sorted(rooms)]

    def names(self) -> List[str]:
        return sorted(self._rooms)

    def __contains__(self, name) -> bool:
        return name in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    # mutations

    def create(self, name: str) -> Room:
        _validate_name(name)
        with self._lock:
            if name in self._rooms:
                raise RoomExists(name)
            rooms = dict(self._rooms)
            rooms[name] = frozenset()
            self._commit(rooms)
        logger.info("Created room %s", name)
        return Room(name)

    def delete(self, name: str) -> None:
        with self._lock:
            if name not in self._rooms:
                raise RoomNotFound(name)
            rooms = dict(self._rooms)
            del rooms[name]
            self._commit(rooms)
        logger.info("Deleted room %s", name)

    def rename(self, name: str, new_name: str) -> Room:
        _validate_name(new_name)
        with self._lock:
            if name not in self._rooms:
                raise RoomNotFound(name)
            if new_name == name:
                return Room(name, self._rooms[name])
            if new_name in self._rooms:
                raise RoomExists(new_name)
            rooms = dict(self._rooms)
            rooms[new_name] = rooms.pop(name)
            self._commit(rooms)
            bulbs = rooms[new_name]
        logger.info("Renamed room %s to %s", name, new_name)
        return Room(new_name, bulbs)

    def add_bulb(self, name: str, address: Union[BulbAddress, str]) -> Room:
        address = BulbAddress(BulbAddress.parse(address).ip)
        validate_lan_address(address)
        with self._lock:
            bulbs = self._rooms.get(name)
            if bulbs is None:
                raise RoomNotFound(name)
            if address in bulbs:
                return Room(name, bulbs)
            rooms = dict(self._rooms)
            rooms[name] = bulbs | {address}
            self._commit(rooms)
            bulbs = rooms[name]
        logger.info("Added %s to room %s", address, name)
        return Room(name, bulbs)

    def remove_bulb(self, name: str, address: Union[BulbAddress, str]) -> Room:
        address = BulbAddress(BulbAddress.parse(address).ip)
        with self._lock:
            bulbs = self._rooms.get(name)
            if bulbs is None:
                raise RoomNotFound(name)
            if address not in bulbs:
                return Room(name, bulbs)
            rooms = dict(self._rooms)
            rooms[name] = bulbs - {address}
            self._commit(rooms)
            bulbs = rooms[name]
        logger.info("Removed %s from room %s", address, name)
        return Room(name, bulbs)

    def flush(self) -> None:
        with self._lock:
            self._commit(dict(self._rooms))

    def _commit(self, rooms: Dict[str, FrozenSet[BulbAddress]]) -> None:
        # caller holds self._lock
        self._write(rooms)
        self._rooms = rooms

    def _write(self, rooms: Dict[str, FrozenSet[BulbAddress]]) -> None:
        document = {name: Room(name, bulbs).ips() for name, bulbs in rooms.items()}
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            logger.exception("Failed to write registry %s", self.path)
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
