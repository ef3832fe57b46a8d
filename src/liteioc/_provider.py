from __future__ import annotations

import asyncio
import inspect
import logging
from contextvars import ContextVar
from typing import (
    TYPE_CHECKING,
    Any,
    TypeVar,
    overload,
)

from ._descriptor import Descriptor, Lifetime
from ._errors import (
    CircularDependencyError,
    InvalidDescriptorError,
    MissingServiceError,
    ProviderDisposedError,
    ScopeViolationError,
    UnknownLifetimeError,
)
from ._lifecycle import run_destroy, run_init
from ._tokens import token_name


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from ._tokens import ServiceToken, Token

    T = TypeVar("T")


_MISSING: Any = object()


class _Slot:
    """A construction in progress, and the partial instance it has published so far."""

    __slots__ = ("context", "done", "partial", "shared_with")

    def __init__(self, context: _ResolutionContext) -> None:
        self.context = context
        self.partial = _MISSING
        self.done = asyncio.Event()
        # resolution -> length of its `cached` list when it first got the partial instance
        self.shared_with: dict[_ResolutionContext, int] = {}

    def share(self, context: _ResolutionContext) -> Any:
        self.shared_with.setdefault(context, len(context.cached))
        return self.partial

    def discard_dependents(self) -> None:
        """Evict everything cached after the (now dead) partial instance was handed out."""
        for context, start in self.shared_with.items():
            for owner, desc in context.cached[start:]:
                logger.debug(
                    "Evicting %s, it holds a partial instance that failed to construct", token_name(desc.token)
                )
                owner._instances.pop(desc, None)  # noqa: SLF001
            del context.cached[start:]
        self.shared_with.clear()


class _ResolutionContext:
    """Bookkeeping for one top-level `get*` call and everything it pulls in.

    Singleton and scoped constructions are tracked by the provider owning their
    cache (so other tasks can see them); transient ones only live here. `cached`
    lists, in order, the entries this resolution put into a provider cache, so
    that entries holding a partial instance whose construction later failed can
    be evicted again.
    """

    __slots__ = ("cached", "depth", "transients")

    def __init__(self) -> None:
        self.transients: dict[tuple[Provider, Descriptor], _Slot] = {}
        self.cached: list[tuple[Provider, Descriptor]] = []
        # constructions in flight; partial instances of other tasks are only handed out while nonzero
        self.depth = 0


# Lets factories and hooks calling back into a provider join the resolution that invoked them.
_active_resolution: ContextVar[_ResolutionContext | None] = ContextVar("liteioc_active_resolution", default=None)


class Provider:
    """Resolves tokens registered on a `Container` into instances.

    - singletons are cached on the root provider and shared by every scope
    - scoped instances are cached on the provider (scope) they were requested from
    - transients are never cached
    - circular dependencies between classes are wired through partial instances:
      a class is allocated before its dependencies are resolved, and initialized
      in place once they are.
    """

    def __init__(
        self,
        descriptors: Mapping[Any, tuple[Descriptor, ...]],
        keyed: Mapping[tuple[Any, Any], Descriptor],
        *,
        validate_scopes: bool = False,
    ) -> None:
        self._descriptors = descriptors
        self._keyed = keyed
        self._validate_scopes = validate_scopes
        self._parent: Provider | None = None
        self._root: Provider = self
        self._instances: dict[Descriptor, object] = {}
        self._pending: dict[Descriptor, _Slot] = {}
        self._disposed = False

    @property
    def is_root(self) -> bool:
        return self._parent is None

    @property
    def disposed(self) -> bool:
        return self._disposed

    @overload
    async def get(self, token: type[T]) -> T | None: ...

    @overload
    async def get(self, token: Token[T]) -> T | None: ...

    @overload
    async def get(self, token: str) -> Any: ...

    async def get(self, token: ServiceToken) -> Any:
        """Resolve the last registration of `token`, or return None when there is none."""
        self._ensure_usable()
        desc = self._lookup(token)
        if desc is None:
            return None
        return await self._resolve_entry(desc)

    @overload
    async def get_required(self, token: type[T]) -> T: ...

    @overload
    async def get_required(self, token: Token[T]) -> T: ...

    @overload
    async def get_required(self, token: str) -> Any: ...

    async def get_required(self, token: ServiceToken) -> Any:
        instance = await self.get(token)
        if instance is None:
            raise MissingServiceError.for_token(token)
        return instance

    async def get_all(self, token: ServiceToken) -> list[Any]:
        """Resolve every registration of `token`, in registration order."""
        self._ensure_usable()
        return [await self._resolve_entry(desc) for desc in self._descriptors.get(token, ())]

    async def get_keyed(self, token: ServiceToken, key: Any) -> Any:
        self._ensure_usable()
        desc = self._keyed.get((key, token))
        if desc is None:
            return None
        return await self._resolve_entry(desc)

    async def get_required_keyed(self, token: ServiceToken, key: Any) -> Any:
        instance = await self.get_keyed(token, key)
        if instance is None:
            msg = f"No provider found for keyed service: token={token_name(token)}, key={token_name(key)}"
            raise MissingServiceError(msg, token=token)
        return instance

    def is_registered(self, token: ServiceToken) -> bool:
        if self._disposed:
            return False
        return bool(self._descriptors.get(token))

    def create_scope(self) -> Scope:
        """Create a child provider with its own scoped instances; singletons stay shared."""
        self._ensure_usable()
        return Scope(self, _from_parent=True)

    async def dispose(self) -> None:
        """Run `on_destroy` on every instance cached here, then refuse further resolution.

        Calling it again does nothing. Scopes created from this provider are not
        disposed with it.
        """
        if self._disposed:
            return
        self._disposed = True

        instances = list(self._instances.values())
        logger.debug("Disposing %s with %d cached instance(s)", type(self).__name__, len(instances))
        # dependents were cached after their dependencies
        await run_destroy(reversed(instances))
        self._instances.clear()

    async def __aenter__(self) -> Provider:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    def _ensure_usable(self) -> None:
        if self._disposed or self._root._disposed:  # noqa: SLF001
            msg = "Provider disposed"
            raise ProviderDisposedError(msg)

    def _lookup(self, token: Any) -> Descriptor | None:
        descriptors = self._descriptors.get(token)
        return descriptors[-1] if descriptors else None

    async def _resolve_entry(self, desc: Descriptor) -> Any:
        context = _active_resolution.get()
        if context is not None:
            return await self._resolve(desc, context)

        context = _ResolutionContext()
        reset = _active_resolution.set(context)
        try:
            return await self._resolve(desc, context)
        finally:
            _active_resolution.reset(reset)

    async def _resolve(self, desc: Descriptor, context: _ResolutionContext) -> Any:
        if desc.has_value:
            return desc.value

        if desc.lifetime is Lifetime.SINGLETON:
            return await self._root._resolve_cached(desc, context)  # noqa: SLF001

        if desc.lifetime is Lifetime.SCOPED:
            if self._validate_scopes and self.is_root:
                msg = (
                    f"Cannot resolve scoped service '{token_name(desc.token)}' from the root provider. "
                    "Create a scope first."
                )
                raise ScopeViolationError(msg)
            return await self._resolve_cached(desc, context)

        if desc.lifetime is Lifetime.TRANSIENT:
            return await self._resolve_transient(desc, context)

        msg = f"Unknown lifetime {desc.lifetime!r} for {token_name(desc.token)}"
        raise UnknownLifetimeError(msg)

    async def _resolve_cached(self, desc: Descriptor, context: _ResolutionContext) -> Any:
        while True:
            if self._disposed:
                msg = "Provider disposed"
                raise ProviderDisposedError(msg)

            if desc in self._instances:
                return self._instances[desc]

            slot = self._pending.get(desc)
            if slot is None:
                break
            if slot.partial is not _MISSING and (slot.context is context or context.depth):
                return slot.share(context)
            if slot.context is context:
                raise self._unresolved_cycle(desc)
            # another task is building it and we hold nothing it could wait on
            await slot.done.wait()

        slot = _Slot(context)
        self._pending[desc] = slot
        context.depth += 1
        try:
            instance = await self._construct(desc, slot, context)
            if self._disposed:
                await run_destroy([instance])
                msg = f"Provider disposed while constructing {token_name(desc.token)}"
                raise ProviderDisposedError(msg)
            self._instances[desc] = instance
            context.cached.append((self, desc))
        except BaseException:
            slot.discard_dependents()
            raise
        finally:
            context.depth -= 1
            del self._pending[desc]
            slot.done.set()
        return instance

    async def _resolve_transient(self, desc: Descriptor, context: _ResolutionContext) -> Any:
        key = (self, desc)
        slot = context.transients.get(key)
        if slot is not None:
            if slot.partial is _MISSING:
                raise self._unresolved_cycle(desc)
            return slot.share(context)

        slot = _Slot(context)
        context.transients[key] = slot
        context.depth += 1
        try:
            return await self._construct(desc, slot, context)
        except BaseException:
            slot.discard_dependents()
            raise
        finally:
            context.depth -= 1
            del context.transients[key]

    async def _construct(self, desc: Descriptor, slot: _Slot, context: _ResolutionContext) -> Any:
        if desc.factory is not None:
            if self._validate_scopes:
                self._check_captive_dependencies(desc)
            logger.debug("Creating %s from factory", token_name(desc.token))
            instance = desc.factory(self)
            if inspect.isawaitable(instance):
                instance = await instance
            return instance

        cls = desc.implementation
        if cls is None:
            msg = f"Invalid service descriptor for token {token_name(desc.token)}: no implementation, factory or value"
            raise InvalidDescriptorError(msg)

        if self._validate_scopes:
            self._check_captive_dependencies(desc)

        logger.debug("Constructing %s as %s", token_name(desc.token), cls.__name__)

        # Allocate first so that dependencies looping back here get this very object
        instance = cls.__new__(cls)
        slot.partial = instance

        args = [await self._resolve_dependency(dep, desc, context) for dep in desc.dependencies]
        cls.__init__(instance, *args)

        await run_init(instance)
        return instance

    async def _resolve_dependency(self, token: Any, dependent: Descriptor, context: _ResolutionContext) -> Any:
        desc = self._lookup(token)
        if desc is None:
            raise MissingServiceError.for_token(token, required_by=dependent.token)

        instance = await self._resolve(desc, context)
        if instance is None:
            raise MissingServiceError.for_token(token, required_by=dependent.token)
        return instance

    def _check_captive_dependencies(self, desc: Descriptor) -> None:
        if not self.is_root:
            return

        for dep in desc.dependencies:
            dep_desc = self._lookup(dep)
            if dep_desc is not None and dep_desc.lifetime is Lifetime.SCOPED:
                kind = "singleton" if desc.lifetime is Lifetime.SINGLETON else "root"
                msg = f"Cannot inject scoped service '{token_name(dep)}' into {kind} service '{token_name(desc.token)}'."
                raise ScopeViolationError(msg)

    def _unresolved_cycle(self, desc: Descriptor) -> CircularDependencyError:
        msg = (
            f"Circular dependency detected for {desc.lifetime.name.lower()} service '{token_name(desc.token)}'. "
            "Service is in the resolution stack but no partial instance is available."
        )
        return CircularDependencyError(msg)


class Scope(Provider):
    """A child provider: own scoped instances, singletons delegated to the root.

    Useful for per-request/per-task lifetimes.
    """

    def __init__(self, parent: Provider, *, _from_parent: bool = False) -> None:
        if not _from_parent:
            msg = "Scope instances must be created via Provider.create_scope()"
            raise RuntimeError(msg)
        super().__init__(parent._descriptors, parent._keyed, validate_scopes=parent._validate_scopes)  # noqa: SLF001
        self._parent = parent
        self._root = parent._root  # noqa: SLF001
        logger.debug("Created scope under %s", type(parent).__name__)
