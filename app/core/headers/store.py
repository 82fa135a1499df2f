from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from app.core.headers.directives import canonical_name
from app.core.headers.validator import DirectiveValidator

DirectiveInput = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


class PolicyStore:
    """
    Immutable set of global security header directives.

    Built once from configuration and shared read-only by every request. A
    configuration reload builds a new store; an existing store is never changed.
    """

    __slots__ = ("_directives",)

    def __init__(self, directives: Mapping[str, str]):
        # Callers are expected to go through build(); the mapping is copied so the
        # store cannot observe later changes to the caller's dict
        object.__setattr__(self, "_directives", MappingProxyType(dict(directives)))

    def __setattr__(self, key, value):
        raise AttributeError("PolicyStore is immutable")

    @classmethod
    def build(cls, directives: DirectiveInput, validator: Optional[DirectiveValidator] = None) -> "PolicyStore":
        """
        Validate every directive and build a store from them.

        Accepts either a mapping or a sequence of ``(name, value)`` pairs. A name
        given twice (in any casing) keeps the last value. The first invalid
        directive raises ``PolicyValidationError`` and nothing is built.
        """
        validator = validator or DirectiveValidator()
        items = directives.items() if isinstance(directives, Mapping) else directives
        validated: Dict[str, str] = {}
        for name, value in items:
            directive = validator.validate(name, value)
            validated[directive.name] = directive.value
        return cls(validated)

    @classmethod
    def empty(cls) -> "PolicyStore":
        return cls({})

    def get(self, name: str) -> Optional[str]:
        return self._directives.get(canonical_name(name))

    def all(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self._directives.items())

    def names(self) -> Tuple[str, ...]:
        return tuple(self._directives)

    def as_mapping(self) -> Mapping[str, str]:
        return self._directives

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_name(name) in self._directives

    def __iter__(self) -> Iterator[str]:
        return iter(self._directives)

    def __len__(self) -> int:
        return len(self._directives)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PolicyStore):
            return NotImplemented
        return dict(self._directives) == dict(other._directives)

    def __hash__(self) -> int:
        return hash(frozenset(self._directives.items()))

    def __repr__(self) -> str:
        return f"PolicyStore({dict(self._directives)!r})"
