from __future__ import annotations

from ._tokens import token_name


class ResolutionError(RuntimeError):
    pass


class MissingServiceError(ResolutionError, LookupError):
    """A requested token, or one of its declared dependencies, has no registration.

    When raised by `Container.build(validate_on_build=True)` the error aggregates
    every missing edge in `missing` as `(dependency, dependent)` pairs.
    """

    def __init__(self, message: str, *, token: object = None, missing: list[tuple[object, object]] | None = None) -> None:
        super().__init__(message)
        self.token = token
        self.missing = missing or []

    @classmethod
    def for_token(cls, token: object, *, required_by: object = None) -> MissingServiceError:
        msg = f"No provider found for token: {token_name(token)}"
        if required_by is not None:
            msg += f" (required by {token_name(required_by)})"
        return cls(msg, token=token)


class InvalidDescriptorError(ResolutionError):
    pass


class UnknownLifetimeError(ResolutionError):
    pass


class ScopeViolationError(ResolutionError):
    pass


class ProviderDisposedError(ResolutionError):
    pass


class CircularDependencyError(ResolutionError):
    """A token is under construction but has no partial instance to hand out.

    Happens when a factory-built service is requested again while its own factory
    is still running in the same resolution.
    """
