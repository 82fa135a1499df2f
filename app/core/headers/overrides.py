from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional, Pattern, Union

from starlette.routing import compile_path

from app.core.headers.directives import canonical_name
from app.core.headers.errors import PolicyValidationError
from app.core.headers.validator import DirectiveValidator


@dataclass(frozen=True)
class SetHeader:
    """Override entry: set the header to ``value`` (an empty string is a real value)."""
    value: str


class RemoveHeader:
    """Override entry: drop the header from the effective policy entirely."""

    _instance: Optional["RemoveHeader"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVE"


REMOVE = RemoveHeader()

OverrideEntry = Union[SetHeader, RemoveHeader]


@dataclass(frozen=True)
class RouteOverride:
    """
    Per-route adjustments layered on top of the global policy.

    ``entries`` maps canonical header names to ``SetHeader`` or ``REMOVE``.
    ``protected`` names keep the value this policy writes even if a later
    middleware tries to change it.
    """
    pattern: str
    entries: Mapping[str, OverrideEntry] = field(default_factory=lambda: MappingProxyType({}))
    protected: FrozenSet[str] = frozenset()
    _regex: Optional[Pattern] = field(default=None, repr=False, compare=False)

    @classmethod
    def build(
        cls,
        pattern: str,
        entries: Mapping[str, Union[str, OverrideEntry]],
        validator: Optional[DirectiveValidator] = None,
        protect: Iterable[str] = (),
    ) -> "RouteOverride":
        """
        Validate override entries the same way a PolicyStore validates directives.

        Plain strings are accepted as shorthand for ``SetHeader``. Raises
        ``PolicyValidationError`` on the first invalid entry.
        """
        validator = validator or DirectiveValidator()
        normalized = {}
        for name, entry in entries.items():
            if isinstance(entry, RemoveHeader):
                normalized[validator.normalize_name(name)] = REMOVE
                continue
            value = entry.value if isinstance(entry, SetHeader) else entry
            directive = validator.validate(name, value)
            normalized[directive.name] = SetHeader(directive.value)

        protected = frozenset(validator.normalize_name(name) for name in protect)
        for name in protected:
            if normalized.get(name) is REMOVE:
                raise PolicyValidationError(name, f"route '{pattern}' cannot protect a header it removes")

        try:
            regex, _, _ = compile_path(pattern)
        except (AssertionError, ValueError) as exc:
            raise PolicyValidationError(pattern, f"invalid route pattern: {exc}", pattern) from None
        return cls(
            pattern=pattern,
            entries=MappingProxyType(normalized),
            protected=protected,
            _regex=regex,
        )

    @classmethod
    def empty(cls) -> "RouteOverride":
        return cls(pattern="")

    def matches(self, path: str) -> bool:
        if self._regex is None:
            return False
        return self._regex.match(path) is not None

    def removes(self, name: str) -> bool:
        return self.entries.get(canonical_name(name)) is REMOVE

    def __bool__(self) -> bool:
        return bool(self.entries) or bool(self.protected)

