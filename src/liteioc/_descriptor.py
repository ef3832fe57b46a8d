from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Factory = Callable[[Any], Any | Awaitable[Any]]


class Lifetime(Enum):
    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True, eq=False)
class Descriptor:
    """One registration of a token.

    Exactly one of `implementation`, `factory` or `value` is meaningful. Descriptors
    compare by identity, so each registration keeps its own cached instance even when
    several share a token.
    """

    token: Any
    lifetime: Lifetime
    implementation: type | None = None
    factory: Factory | None = None
    value: Any = UNSET
    dependencies: tuple[Any, ...] = field(default=())
    key: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))

    @property
    def has_value(self) -> bool:
        return self.value is not UNSET
