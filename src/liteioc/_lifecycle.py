from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable


logger = logging.getLogger(__name__)


@runtime_checkable
class SupportsInit(Protocol):
    """Instances exposing `on_init` get it called (and awaited) right after construction."""

    def on_init(self) -> Awaitable[None] | None: ...


@runtime_checkable
class SupportsDestroy(Protocol):
    """Instances exposing `on_destroy` get it called once when their owning provider is disposed."""

    def on_destroy(self) -> Awaitable[None] | None: ...


async def run_init(instance: object) -> None:
    if not isinstance(instance, SupportsInit):
        return
    result = instance.on_init()
    if inspect.isawaitable(result):
        await result


async def run_destroy(instances: Iterable[object]) -> None:
    """Best-effort teardown: a failing hook is logged and the rest still run."""
    seen: set[int] = set()
    for instance in instances:
        if id(instance) in seen or not isinstance(instance, SupportsDestroy):
            continue
        seen.add(id(instance))
        try:
            result = instance.on_destroy()
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            logger.exception("on_destroy failed for %s", type(instance).__name__)
