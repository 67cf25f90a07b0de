"""
Type Registry: the static table of watched constructors.

Each watched type maps to the set of constructor signatures that are
considered safe, i.e. that route parsing through a hardened reader. The
table is built once from configuration and is read-only afterwards, so a
single instance can be shared by every worker thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from dtdscan.errors import ConfigError

HARDENED_READER = "System.Xml.XmlReader"

DEFAULT_REGISTRY: Dict[str, Any] = {
    "version": 1,
    "watched_types": {
        "System.Xml.XPath.XPathDocument": {
            "safe_signatures": [
                [HARDENED_READER],
                [HARDENED_READER, "System.Xml.XmlSpace"],
            ],
        },
    },
}


@dataclass(frozen=True)
class SafeSignature:
    """A positional parameter list that makes a watched constructor safe."""
    type_name: str
    parameter_types: Tuple[str, ...]

    @property
    def arity(self) -> int:
        return len(self.parameter_types)

    def __str__(self) -> str:
        return f"{self.type_name}({', '.join(self.parameter_types)})"


class TypeRegistry:
    """Read-only lookup from watched type name to its safe signatures."""

    def __init__(self, entries: Mapping[str, Iterable[Tuple[str, ...]]], version: int = 1):
        table = {}
        for type_name, signatures in entries.items():
            table[type_name] = frozenset(
                SafeSignature(type_name, tuple(params)) for params in signatures
            )
        self._table: Mapping[str, FrozenSet[SafeSignature]] = MappingProxyType(table)
        self._version = version

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]] = None) -> "TypeRegistry":
        """Build a registry from the ``registry`` section of a config."""
        data = DEFAULT_REGISTRY if data is None else data
        if not isinstance(data, Mapping):
            raise ConfigError("registry section must be a mapping")
        watched = data.get("watched_types")
        if not isinstance(watched, Mapping):
            raise ConfigError("registry.watched_types must be a mapping")
        entries: Dict[str, Tuple[Tuple[str, ...], ...]] = {}
        for type_name, entry in watched.items():
            if not isinstance(type_name, str) or not type_name:
                raise ConfigError(f"Invalid watched type name: {type_name!r}")
            if entry is not None and not isinstance(entry, Mapping):
                raise ConfigError(f"Entry for {type_name} must be a mapping")
            signatures = (entry or {}).get("safe_signatures", [])
            if not isinstance(signatures, list):
                raise ConfigError(f"safe_signatures for {type_name} must be a list")
            parsed = []
            for params in signatures:
                if not isinstance(params, list) or not all(isinstance(p, str) and p for p in params):
                    raise ConfigError(
                        f"Invalid safe signature for {type_name}: {params!r}"
                    )
                parsed.append(tuple(params))
            entries[type_name] = tuple(parsed)
        version = data.get("version", 1)
        if not isinstance(version, int):
            raise ConfigError(f"registry.version must be an integer, got {version!r}")
        return cls(entries, version=version)

    def lookup(self, type_name: str) -> Optional[FrozenSet[SafeSignature]]:
        """Return the safe signatures for a watched type, or None."""
        return self._table.get(type_name)

    def is_watched(self, type_name: str) -> bool:
        return type_name in self._table

    @property
    def watched_types(self) -> Tuple[str, ...]:
        return tuple(sorted(self._table))

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._table)
