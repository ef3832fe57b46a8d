"""Asynchronous inversion-of-control container.

Register classes, factories and fixed values on a `Container`, then build a
`Provider` that constructs them on demand, honouring three lifetimes and
wiring circular dependencies through partially constructed instances.

Exports:
- `Container`: registry of service descriptors, plus dependency diagnostics.
- `Provider`: async resolver built by `Container.build()`.
- `Scope`: child provider with its own scoped instances (per-request lifetimes).
- `Lifetime`: singleton, scoped or transient.
- `Token`: named identity token for services that are not classes.
- `SupportsInit` / `SupportsDestroy`: optional `on_init` / `on_destroy` hooks.
"""

from ._container import Container
from ._descriptor import Descriptor, Lifetime
from ._errors import (
    CircularDependencyError,
    InvalidDescriptorError,
    MissingServiceError,
    ProviderDisposedError,
    ResolutionError,
    ScopeViolationError,
    UnknownLifetimeError,
)
from ._graph import CircularPath, DependencyGraph, DependencyNode, NodeMarker
from ._lifecycle import SupportsDestroy, SupportsInit
from ._provider import Provider, Scope
from ._tokens import Token, token_name


__all__ = [
    "CircularDependencyError",
    "CircularPath",
    "Container",
    "DependencyGraph",
    "DependencyNode",
    "Descriptor",
    "InvalidDescriptorError",
    "Lifetime",
    "MissingServiceError",
    "NodeMarker",
    "Provider",
    "ProviderDisposedError",
    "ResolutionError",
    "Scope",
    "ScopeViolationError",
    "SupportsDestroy",
    "SupportsInit",
    "Token",
    "UnknownLifetimeError",
    "token_name",
]
