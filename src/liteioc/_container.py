from __future__ import annotations

import inspect
import logging
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    overload,
)

from ._descriptor import Descriptor, Lifetime
from ._errors import MissingServiceError
from ._graph import CircularPath, DependencyGraph, DependencyNode
from ._provider import Provider
from ._tokens import token_name


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ._descriptor import Factory
    from ._tokens import ServiceToken

    # class, factory, or a dependency list for a class token
    Target = type | Callable[..., Any] | Sequence[Any] | None


class Container:
    """Registry of service descriptors.

    - register classes, factories or fixed values under a token
    - singleton / scoped / transient lifetimes
    - dependencies are declared explicitly, in constructor order
    - several registrations per token: the last one wins for `get`,
      all of them are returned by `get_all`
    - `build()` produces a `Provider` that resolves them.
    """

    def __init__(self) -> None:
        self._descriptors: dict[Any, list[Descriptor]] = {}
        self._keyed: dict[tuple[Any, Any], Descriptor] = {}
        self._lock = threading.RLock()

    def add(self, descriptor: Descriptor) -> Container:
        """Append a descriptor as-is. No validation happens until resolution."""
        with self._lock:
            self._descriptors.setdefault(descriptor.token, []).append(descriptor)
            if descriptor.key is not None:
                self._keyed[descriptor.key, descriptor.token] = descriptor

        logger.debug("Registered %s (%s)", token_name(descriptor.token), descriptor.lifetime)
        return self

    def try_add(self, descriptor: Descriptor) -> Container:
        with self._lock:
            if not self.is_registered(descriptor.token):
                self.add(descriptor)
        return self

    @overload
    def register(
        self,
        token: ServiceToken,
        impl: type,
        *,
        factory: None = ...,
        dependencies: Sequence[Any] | None = ...,
        lifetime: Lifetime = Lifetime.SINGLETON,
        key: Any = ...,
    ) -> Container: ...

    @overload
    def register(
        self,
        token: ServiceToken,
        impl: None = ...,
        *,
        factory: Factory,
        dependencies: Sequence[Any] | None = ...,
        lifetime: Lifetime = Lifetime.SINGLETON,
        key: Any = ...,
    ) -> Container: ...

    @overload
    def register(
        self,
        token: type,
        impl: None = ...,
        *,
        factory: None = ...,
        dependencies: Sequence[Any] | None = ...,
        lifetime: Lifetime = Lifetime.SINGLETON,
        key: Any = ...,
    ) -> Container: ...

    def register(
        self,
        token: ServiceToken,
        impl: type | None = None,
        *,
        factory: Factory | None = None,
        dependencies: Sequence[Any] | None = None,
        lifetime: Lifetime = Lifetime.SINGLETON,
        key: Any = None,
    ) -> Container:
        """Register a class or a factory for a token.

        Example:
          container.register(Repo, SqlRepo, dependencies=[Database])
          container.register("clock", factory=lambda provider: Clock(), lifetime=Lifetime.TRANSIENT)

        When neither `impl` nor `factory` is given and the token is a class, the
        token is its own implementation.
        """
        if impl is not None and factory is not None:
            msg = "Provide either `impl` or `factory`, not both."
            raise ValueError(msg)

        if impl is not None and not inspect.isclass(impl):
            msg = f"Implementation for {token_name(token)} must be a class, got {impl!r}"
            raise TypeError(msg)

        if impl is None and factory is None and inspect.isclass(token):
            impl = token

        # Implementations without declared dependencies take no constructor arguments
        deps = tuple(dependencies) if dependencies is not None else ()

        return self.add(
            Descriptor(
                token=token,
                lifetime=lifetime,
                implementation=impl,
                factory=factory,
                dependencies=deps,
                key=key,
            )
        )

    def register_singleton(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        return self._register_target(token, target, dependencies, Lifetime.SINGLETON)

    def register_scoped(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        return self._register_target(token, target, dependencies, Lifetime.SCOPED)

    def register_transient(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        return self._register_target(token, target, dependencies, Lifetime.TRANSIENT)

    def try_register_singleton(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        """Register only when nothing is registered for `token` yet."""
        with self._lock:
            if not self.is_registered(token):
                self.register_singleton(token, target, dependencies)
        return self

    def try_register_scoped(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        with self._lock:
            if not self.is_registered(token):
                self.register_scoped(token, target, dependencies)
        return self

    def try_register_transient(self, token: ServiceToken, target: Target = None, dependencies: Sequence[Any] | None = None) -> Container:
        with self._lock:
            if not self.is_registered(token):
                self.register_transient(token, target, dependencies)
        return self

    def register_instance(self, token: ServiceToken, instance: object) -> Container:
        """Register a pre-built value (always singleton)."""
        return self.add(Descriptor(token=token, lifetime=Lifetime.SINGLETON, value=instance))

    def register_keyed_singleton(
        self, token: ServiceToken, target: type | Factory, key: Any, *, dependencies: Sequence[Any] | None = None
    ) -> Container:
        return self._register_keyed(token, target, key, dependencies, Lifetime.SINGLETON)

    def register_keyed_scoped(
        self, token: ServiceToken, target: type | Factory, key: Any, *, dependencies: Sequence[Any] | None = None
    ) -> Container:
        return self._register_keyed(token, target, key, dependencies, Lifetime.SCOPED)

    def register_keyed_transient(
        self, token: ServiceToken, target: type | Factory, key: Any, *, dependencies: Sequence[Any] | None = None
    ) -> Container:
        return self._register_keyed(token, target, key, dependencies, Lifetime.TRANSIENT)

    def remove(self, token: ServiceToken) -> Container:
        """Drop every registration of `token`, keyed ones included."""
        with self._lock:
            self._descriptors.pop(token, None)
            for keyed in [k for k in self._keyed if k[1] == token]:
                del self._keyed[keyed]
        return self

    def replace(self, token: ServiceToken, target: type | Factory, dependencies: Sequence[Any] | None = None) -> Container:
        """Swap the registrations of `token` for a single new one with the previous lifetime.

        Falls back to singleton when `token` was not registered.
        """
        with self._lock:
            previous = self._descriptors.get(token)
            lifetime = previous[-1].lifetime if previous else Lifetime.SINGLETON
            self.remove(token)
            return self._register_target(token, target, dependencies, lifetime)

    def is_registered(self, token: ServiceToken) -> bool:
        return bool(self._descriptors.get(token))

    def descriptors(self, token: ServiceToken) -> tuple[Descriptor, ...]:
        return tuple(self._descriptors.get(token, ()))

    def build(self, *, validate_scopes: bool = False, validate_on_build: bool = False) -> Provider:
        """Create a root `Provider` over a snapshot of the current registrations.

        - `validate_scopes`: reject scoped services resolved from the root provider,
          and scoped dependencies captured by root-level services.
        - `validate_on_build`: fail now, with one error listing every declared
          dependency that has no registration.
        """
        with self._lock:
            descriptors = {token: tuple(descs) for token, descs in self._descriptors.items()}
            keyed = dict(self._keyed)

        if validate_on_build:
            self._validate_dependencies(descriptors)

        provider = Provider(descriptors, keyed, validate_scopes=validate_scopes)
        logger.debug("Built provider over %d token(s)", len(descriptors))
        return provider

    def _validate_dependencies(self, descriptors: dict[Any, tuple[Descriptor, ...]]) -> None:
        missing: list[tuple[Any, Any]] = []
        errors: list[str] = []

        for token, descs in descriptors.items():
            for desc in descs:
                for dep in desc.dependencies:
                    if descriptors.get(dep):
                        continue
                    missing.append((dep, token))
                    if desc.key is None:
                        errors.append(f"Missing dependency: {token_name(dep)} required by {token_name(token)}")
                    else:
                        errors.append(
                            f"Missing dependency: {token_name(dep)} required by keyed service "
                            f"{token_name(token)} (key: {token_name(desc.key)})"
                        )

        if errors:
            msg = "Validation failed on build:\n" + "\n".join(errors)
            raise MissingServiceError(msg, missing=missing)

    # Diagnostics

    def _graph(self) -> DependencyGraph:
        with self._lock:
            return DependencyGraph({token: tuple(descs) for token, descs in self._descriptors.items()})

    def build_dependency_tree(self, token: ServiceToken) -> DependencyNode:
        return self._graph().build_tree(token)

    def render_dependency_tree(self, token: ServiceToken) -> str:
        return self._graph().render_tree(token)

    def find_circular_paths(self) -> list[CircularPath]:
        return self._graph().find_circular_paths()

    def render_circular_paths(self) -> str:
        return self._graph().render_circular_paths()

    def _register_target(
        self,
        token: ServiceToken,
        target: Target,
        dependencies: Sequence[Any] | None,
        lifetime: Lifetime,
    ) -> Container:
        if isinstance(target, (list, tuple)):
            if dependencies is not None:
                msg = "Dependencies given twice."
                raise ValueError(msg)
            return self.register(token, dependencies=target, lifetime=lifetime)

        if target is None or inspect.isclass(target):
            return self.register(token, target, dependencies=dependencies, lifetime=lifetime)

        if callable(target):
            return self.register(token, factory=target, dependencies=dependencies, lifetime=lifetime)

        msg = f"Expected a class, a factory or a dependency list for {token_name(token)}, got {target!r}"
        raise TypeError(msg)

    def _register_keyed(
        self,
        token: ServiceToken,
        target: type | Factory,
        key: Any,
        dependencies: Sequence[Any] | None,
        lifetime: Lifetime,
    ) -> Container:
        if key is None:
            msg = "Keyed registrations need a key."
            raise ValueError(msg)

        if inspect.isclass(target):
            return self.register(token, target, dependencies=dependencies, lifetime=lifetime, key=key)

        if callable(target):
            return self.register(token, factory=target, dependencies=dependencies, lifetime=lifetime, key=key)

        msg = f"Expected a class or a factory for keyed service {token_name(token)}, got {target!r}"
        raise TypeError(msg)
