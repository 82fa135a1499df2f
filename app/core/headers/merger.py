from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Iterator, Mapping, Optional, Tuple

from app.core.headers.directives import canonical_name
from app.core.headers.overrides import RemoveHeader, RouteOverride, SetHeader
from app.core.headers.store import PolicyStore


@dataclass(frozen=True)
class EffectivePolicy:
    """The merged header set for a single request. Never cached across requests."""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    protected: FrozenSet[str] = frozenset()

    def get(self, name: str) -> Optional[str]:
        return self.headers.get(canonical_name(name))

    def items(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self.headers.items())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_name(name) in self.headers

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self.headers)


def merge(base: PolicyStore, override: Optional[RouteOverride] = None) -> EffectivePolicy:
    """
    Layer a route override on top of the global store.

    ``SetHeader`` entries replace or add a directive, ``REMOVE`` entries drop it.
    Override entries are validated when the route is registered, so merging
    cannot fail.
    """
    merged = dict(base.all())
    protected: FrozenSet[str] = frozenset()

    if override is not None:
        for name, entry in override.entries.items():
            if isinstance(entry, RemoveHeader):
                merged.pop(name, None)
            elif isinstance(entry, SetHeader):
                merged[name] = entry.value
        # Only headers that end up on the response can be protected
        protected = frozenset(name for name in override.protected if name in merged)

    return EffectivePolicy(headers=MappingProxyType(merged), protected=protected)
