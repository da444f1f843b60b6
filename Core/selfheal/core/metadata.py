from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConditionKind(str, Enum):
    ID = "id"
    CLASS = "class"
    ATTRIBUTE = "attribute"
    CONTAINS = "contains"
    STARTS_WITH = "starts-with"
    TEXT = "text"
    TAG = "tag"
    UNKNOWN = "unknown"


class Strategy(str, Enum):
    DIRECT = "direct"
    SANITIZED = "sanitized"
    CACHED = "cached"
    FUZZY = "fuzzy"
    HANDLE = "handle"


@dataclass(slots=True)
class ElementSignature:
    """Snapshot of an element's addressable characteristics.

    ``handle`` is the live element the snapshot was taken from. It is only
    valid for the collection pass that produced it and must never be cached.
    ``frame_path`` lists the frame elements, from the top document down, that
    the driver has to enter before ``handle`` can be used.
    """

    tag_name: str
    id: str | None = None
    name: str | None = None
    class_name: str | None = None
    type: str | None = None
    text_content: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    handle: Any = field(default=None, repr=False, compare=False)
    frame_path: tuple = field(default=(), repr=False, compare=False)

    @property
    def first_class(self) -> str:
        tokens = (self.class_name or "").split()
        return tokens[0] if tokens else ""


@dataclass(frozen=True, slots=True)
class SelectorCondition:
    kind: ConditionKind
    value: str
    attribute: str | None = None
    tag_hint: str | None = None

    @property
    def key(self) -> str:
        """Name the condition is compared under (attribute name, 'text', 'id', ...)."""
        if self.attribute:
            return self.attribute
        if self.kind in (ConditionKind.CONTAINS, ConditionKind.STARTS_WITH):
            return "text"
        return self.kind.value


@dataclass(frozen=True, slots=True)
class SelectorQuery:
    raw: str
    conditions: tuple[SelectorCondition, ...]

    @property
    def is_compound(self) -> bool:
        return len(self.conditions) > 1


@dataclass(slots=True)
class ScoredSignature:
    signature: ElementSignature
    score: float


@dataclass(frozen=True, slots=True)
class RawSelector:
    selector: str


@dataclass(frozen=True, slots=True)
class ResolvedHandle:
    element: Any

    @property
    def selector(self) -> str:
        return f"<handle {getattr(self.element, 'id', '?')}>"


LocatorTarget = RawSelector | ResolvedHandle


def as_target(value: Any) -> LocatorTarget:
    """Wraps a selector string or element into a tagged locator target."""

    if isinstance(value, (RawSelector, ResolvedHandle)):
        return value
    if isinstance(value, str):
        return RawSelector(value)
    if value is None:
        raise TypeError("A selector string or element handle is required")
    return ResolvedHandle(value)


@dataclass(slots=True)
class Resolution:
    element: Any = field(repr=False)
    strategy: Strategy
    selector: str
    score: float | None = None


@dataclass(slots=True)
class HealAttempt:
    original_selector: str
    healed_selector: str
    strategy: str
    success: bool
    score: float | None = None
    tag_name: str = ""
    candidate_count: int = 0
    context_selector: str = "*"
    artifact_paths: dict[str, str] = field(default_factory=dict)
