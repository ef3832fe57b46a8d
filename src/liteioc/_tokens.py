from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Generic, TypeVar


if TYPE_CHECKING:
    from typing import TypeAlias


T = TypeVar("T")


class Token(Generic[T]):
    """Named, identity-compared service identifier.

    Two tokens created with the same name are still different tokens:

      DB = Token("db")
      container.register_singleton(DB, PostgresDB)
    """

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Token({self.name!r})"


if TYPE_CHECKING:
    ServiceToken: TypeAlias = type[Any] | str | Token[Any]


def token_name(token: object) -> str:
    """Human readable name for a token, used in errors and diagnostics."""
    if isinstance(token, str):
        return token
    if isinstance(token, Token):
        return token.name
    if inspect.isclass(token):
        return token.__name__
    return repr(token)
