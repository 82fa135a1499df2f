import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

from app.core.headers.errors import PolicyValidationError
from app.core.headers.merger import EffectivePolicy, merge
from app.core.headers.overrides import OverrideEntry, RouteOverride
from app.core.headers.store import DirectiveInput, PolicyStore
from app.core.headers.validator import DirectiveValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySnapshot:
    """A global store and its route overrides, always swapped together."""
    store: PolicyStore
    routes: Tuple[RouteOverride, ...] = ()

    def override_for(self, path: str) -> Optional[RouteOverride]:
        # First registered pattern wins, same as route dispatch
        for route in self.routes:
            if route.matches(path):
                return route
        return None

    def effective_for(self, path: str) -> EffectivePolicy:
        return merge(self.store, self.override_for(path))


class HeaderPolicy:
    """
    Owner of the active security header configuration.

    Requests read ``snapshot`` without locking; the snapshot is immutable and a
    reload replaces the reference in one assignment, so in-flight requests keep
    the snapshot they started with. Writers are serialized by a lock.
    """

    def __init__(
        self,
        store: PolicyStore,
        validator: Optional[DirectiveValidator] = None,
        routes: Iterable[RouteOverride] = (),
    ):
        self.validator = validator or DirectiveValidator()
        self._snapshot = PolicySnapshot(store=store, routes=tuple(routes))
        self._write_lock = threading.Lock()

    @classmethod
    def from_directives(cls, directives: DirectiveInput, allow_custom: bool = False) -> "HeaderPolicy":
        validator = DirectiveValidator(allow_custom=allow_custom)
        return cls(PolicyStore.build(directives, validator), validator)

    @property
    def snapshot(self) -> PolicySnapshot:
        return self._snapshot

    @property
    def store(self) -> PolicyStore:
        return self._snapshot.store

    @property
    def routes(self) -> Tuple[RouteOverride, ...]:
        return self._snapshot.routes

    def build_route(
        self,
        pattern: str,
        entries: Mapping[str, Union[str, OverrideEntry]],
        protect: Iterable[str] = (),
    ) -> RouteOverride:
        return RouteOverride.build(pattern, entries, self.validator, protect=protect)

    def register_route(
        self,
        pattern: str,
        entries: Mapping[str, Union[str, OverrideEntry]],
        protect: Iterable[str] = (),
    ) -> RouteOverride:
        """Validate and register overrides for every path matching ``pattern``."""
        route = self.build_route(pattern, entries, protect)
        with self._write_lock:
            current = self._snapshot
            self._snapshot = PolicySnapshot(store=current.store, routes=current.routes + (route,))
        logger.info(f"Registered security header override for route '{pattern}'")
        return route

    def effective_for(self, path: str) -> EffectivePolicy:
        return self._snapshot.effective_for(path)

    def reload(
        self,
        directives: DirectiveInput,
        routes: Optional[Iterable[RouteOverride]] = None,
    ) -> PolicySnapshot:
        """
        Replace the global store (and optionally the route overrides).

        The new configuration is fully validated before anything is swapped. On
        ``PolicyValidationError`` the reload is rejected and the current
        snapshot stays active.
        """
        try:
            store = PolicyStore.build(directives, self.validator)
        except PolicyValidationError as e:
            logger.error(f"Security header policy reload rejected, keeping current policy: {e}")
            raise

        with self._write_lock:
            new_routes = self._snapshot.routes if routes is None else tuple(routes)
            self._snapshot = PolicySnapshot(store=store, routes=new_routes)
        logger.info(
            f"Security header policy reloaded with {len(store)} directives and {len(new_routes)} route overrides"
        )
        return self._snapshot
