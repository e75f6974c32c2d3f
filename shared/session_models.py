"""
Session value types shared by the gateway and the subgraphs.

``SessionData`` is a plain JSON object. Values handed to subgraph resolvers
or captured in a snapshot are deep-frozen (``MappingProxyType`` and tuples)
so nothing downstream can mutate them in place.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

SessionData = Dict[str, Any]


def freeze(value: Any) -> Any:
    """Return a deep read-only copy of a JSON-like value."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Return a deep mutable copy of a (possibly frozen) JSON-like value."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time, read-only copy of a session plus the client cookie.

    Captured once when the gateway starts handling a request; every subgraph
    call of that request receives this same object.
    """

    data: Mapping[str, Any]
    cookie: Optional[str] = None

    @classmethod
    def capture(cls, data: Optional[Mapping[str, Any]], cookie: Optional[str] = None) -> "SessionSnapshot":
        return cls(data=freeze(data or {}), cookie=cookie)

    def to_dict(self) -> SessionData:
        return thaw(self.data)


@dataclass(frozen=True)
class MutationProposal:
    """Delta a single subgraph call wants applied to the session.

    ``updates`` adds or overwrites keys, ``deletions`` tombstones them. The
    two never share a key. A proposal never replaces the whole session.
    """

    updates: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    deletions: FrozenSet[str] = frozenset()

    def __post_init__(self):
        overlap = set(self.updates) & set(self.deletions)
        if overlap:
            raise ValueError(f"keys both updated and deleted: {sorted(overlap)}")
        object.__setattr__(self, "updates", freeze(self.updates))
        object.__setattr__(self, "deletions", frozenset(self.deletions))

    @classmethod
    def of(cls, updates: Optional[Mapping[str, Any]] = None, deletions: Iterable[str] = ()) -> "MutationProposal":
        return cls(updates=updates or {}, deletions=frozenset(deletions))

    @property
    def is_empty(self) -> bool:
        return not self.updates and not self.deletions

    @property
    def keys(self) -> FrozenSet[str]:
        return frozenset(self.updates) | self.deletions

    def apply_to(self, data: Mapping[str, Any]) -> SessionData:
        """Return a new session with this delta applied; ``data`` is untouched."""
        result = thaw(data)
        for key, value in self.updates.items():
            result[key] = thaw(value)
        for key in self.deletions:
            result.pop(key, None)
        return result

    def to_wire(self) -> Dict[str, Any]:
        return {"set": thaw(self.updates), "unset": sorted(self.deletions)}

    @classmethod
    def from_wire(cls, payload: Any) -> "MutationProposal":
        if not isinstance(payload, Mapping):
            raise ValueError("mutation payload must be an object")
        updates = payload.get("set", {})
        deletions = payload.get("unset", [])
        if not isinstance(updates, Mapping):
            raise ValueError("'set' must be an object")
        if not isinstance(deletions, list) or not all(isinstance(key, str) for key in deletions):
            raise ValueError("'unset' must be a list of keys")
        return cls.of(updates, deletions)
