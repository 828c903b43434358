"""Trigger predicates over a task context.

A trigger decides whether an agent applies to a task. Triggers are built
from a small combinator language instead of free text, so matching is a
pure function of the context and can be written down in the routing table.

Leaves look at one context attribute; combinators compose them:

    >>> unsafe_rust = Equals("lang", "rust") & Flag("has_unsafe_block")
    >>> unsafe_rust({"lang": "rust", "has_unsafe_block": True})
    True

The YAML form is one single-key mapping per node:

    any:
      - flag: handles_auth
      - all:
          - equals: {lang: rust}
          - flag: has_unsafe_block

Every predicate is total. A missing attribute or a value of the wrong type
makes a leaf evaluate to False; it never raises.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from switchboard.core.errors import ConfigError


class Predicate:
    """Base class for trigger predicates. Supports ``&``, ``|`` and ``~``."""

    __slots__ = ()

    def __call__(self, context: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def to_dict(self) -> Any:
        """Return the YAML-shaped form accepted by parse_predicate."""
        raise NotImplementedError

    def __and__(self, other: Predicate) -> Predicate:
        return AllOf((self, other))

    def __or__(self, other: Predicate) -> Predicate:
        return AnyOf((self, other))

    def __invert__(self) -> Predicate:
        return Not(self)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


# =============================================================================
# Leaves
# =============================================================================


@dataclass(frozen=True, slots=True)
class Flag(Predicate):
    """True when the attribute is exactly ``True``."""

    name: str

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return context.get(self.name) is True

    def to_dict(self) -> Any:
        return {"flag": self.name}


@dataclass(frozen=True, slots=True)
class Present(Predicate):
    """True when the attribute exists and is not None."""

    name: str

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return context.get(self.name) is not None

    def to_dict(self) -> Any:
        return {"present": self.name}


@dataclass(frozen=True, slots=True)
class Equals(Predicate):
    name: str
    value: Any

    def __call__(self, context: Mapping[str, Any]) -> bool:
        if self.name not in context:
            return False
        actual = context[self.name]
        # True == 1 in Python; a flag must not satisfy a numeric equality
        if isinstance(actual, bool) is not isinstance(self.value, bool):
            return False
        return bool(actual == self.value)

    def to_dict(self) -> Any:
        return {"equals": {self.name: self.value}}


@dataclass(frozen=True, slots=True)
class OneOf(Predicate):
    name: str
    values: tuple[Any, ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        if self.name not in context:
            return False
        actual = context[self.name]
        return any(Equals(self.name, v)({self.name: actual}) for v in self.values)

    def to_dict(self) -> Any:
        return {"one_of": {self.name: list(self.values)}}


@dataclass(frozen=True, slots=True)
class Contains(Predicate):
    """True when the attribute is a collection holding ``item``."""

    name: str
    item: Any

    def __call__(self, context: Mapping[str, Any]) -> bool:
        collection = context.get(self.name)
        if isinstance(collection, str | bytes) or not isinstance(
            collection, list | tuple | set | frozenset
        ):
            return False
        try:
            return self.item in collection
        except TypeError:  # unhashable item tested against a set
            return False

    def to_dict(self) -> Any:
        return {"contains": {self.name: self.item}}


@dataclass(frozen=True, slots=True)
class AtLeast(Predicate):
    name: str
    threshold: float

    def __call__(self, context: Mapping[str, Any]) -> bool:
        actual = context.get(self.name)
        return _is_number(actual) and actual >= self.threshold

    def to_dict(self) -> Any:
        return {"at_least": {self.name: self.threshold}}


@dataclass(frozen=True, slots=True)
class Below(Predicate):
    name: str
    threshold: float

    def __call__(self, context: Mapping[str, Any]) -> bool:
        actual = context.get(self.name)
        return _is_number(actual) and actual < self.threshold

    def to_dict(self) -> Any:
        return {"below": {self.name: self.threshold}}


@dataclass(frozen=True, slots=True)
class Always(Predicate):
    def __call__(self, context: Mapping[str, Any]) -> bool:
        return True

    def to_dict(self) -> Any:
        return {"always": True}


@dataclass(frozen=True, slots=True)
class Never(Predicate):
    def __call__(self, context: Mapping[str, Any]) -> bool:
        return False

    def to_dict(self) -> Any:
        return {"never": True}


ALWAYS = Always()
NEVER = Never()


# =============================================================================
# Combinators
# =============================================================================


@dataclass(frozen=True, slots=True)
class AllOf(Predicate):
    """Logical AND. An empty AllOf is True."""

    parts: tuple[Predicate, ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return all(part(context) for part in self.parts)

    def to_dict(self) -> Any:
        return {"all": [part.to_dict() for part in self.parts]}


@dataclass(frozen=True, slots=True)
class AnyOf(Predicate):
    """Logical OR. An empty AnyOf is False."""

    parts: tuple[Predicate, ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return any(part(context) for part in self.parts)

    def to_dict(self) -> Any:
        return {"any": [part.to_dict() for part in self.parts]}


@dataclass(frozen=True, slots=True)
class Not(Predicate):
    part: Predicate

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return not self.part(context)

    def to_dict(self) -> Any:
        return {"not": self.part.to_dict()}


# =============================================================================
# Parsing
# =============================================================================


def _freeze(value: Any) -> Any:
    """Turn YAML lists into tuples so predicates stay hashable."""
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _require_name(arg: Any, op: str, path: str) -> str:
    if not isinstance(arg, str) or not arg:
        raise ConfigError(f"'{op}' expects an attribute name", config_key=path)
    return arg


def _require_pairs(arg: Any, op: str, path: str) -> list[tuple[str, Any]]:
    if not isinstance(arg, dict) or not arg:
        raise ConfigError(f"'{op}' expects a mapping of attribute to value", config_key=path)
    for key in arg:
        if not isinstance(key, str):
            raise ConfigError(f"'{op}' attribute names must be strings", config_key=path)
    return list(arg.items())


def _require_number(value: Any, op: str, path: str) -> float:
    if not _is_number(value):
        raise ConfigError(f"'{op}' expects a numeric threshold", config_key=path)
    return value  # type: ignore[no-any-return]


def _per_attribute(
    arg: Any,
    op: str,
    path: str,
    build: Callable[[str, Any], Predicate],
) -> Predicate:
    parts = tuple(build(name, value) for name, value in _require_pairs(arg, op, path))
    return parts[0] if len(parts) == 1 else AllOf(parts)


def _parse_children(arg: Any, op: str, path: str) -> tuple[Predicate, ...]:
    if not isinstance(arg, list):
        raise ConfigError(f"'{op}' expects a list of predicates", config_key=path)
    return tuple(parse_predicate(child, path=f"{path}.{op}[{i}]") for i, child in enumerate(arg))


def parse_predicate(node: Any, *, path: str = "trigger") -> Predicate:
    """Build a Predicate from its YAML form.

    Args:
        node: A single-key mapping (or a bare boolean for always/never).
        path: Location of the node, used in error messages.

    Raises:
        ConfigError: If the node is not a well-formed predicate.
    """
    if node is True:
        return ALWAYS
    if node is False:
        return NEVER
    if not isinstance(node, dict) or len(node) != 1:
        raise ConfigError(
            "Predicate must be a mapping with exactly one operator",
            config_key=path,
            details={"node": repr(node)},
        )

    ((op, arg),) = node.items()
    match op:
        case "flag":
            return Flag(_require_name(arg, op, path))
        case "present":
            return Present(_require_name(arg, op, path))
        case "equals":
            return _per_attribute(arg, op, path, lambda k, v: Equals(k, _freeze(v)))
        case "one_of":

            def build_one_of(name: str, values: Any) -> Predicate:
                if not isinstance(values, list):
                    raise ConfigError("'one_of' expects a list of values", config_key=path)
                return OneOf(name, _freeze(values))

            return _per_attribute(arg, op, path, build_one_of)
        case "contains":
            return _per_attribute(arg, op, path, lambda k, v: Contains(k, _freeze(v)))
        case "at_least":
            return _per_attribute(
                arg, op, path, lambda k, v: AtLeast(k, _require_number(v, op, path))
            )
        case "below":
            return _per_attribute(
                arg, op, path, lambda k, v: Below(k, _require_number(v, op, path))
            )
        case "all":
            return AllOf(_parse_children(arg, op, path))
        case "any":
            return AnyOf(_parse_children(arg, op, path))
        case "not":
            return Not(parse_predicate(arg, path=f"{path}.not"))
        case "always":
            return ALWAYS if arg is not False else NEVER
        case "never":
            return NEVER if arg is not False else ALWAYS
        case _:
            raise ConfigError(f"Unknown predicate operator '{op}'", config_key=path)
