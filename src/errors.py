"""
Errors - Structured exceptions raised by the router, registry and commands.

Every error carries a short ``type`` used to classify it for the user and a
``detail`` dict with the context needed to diagnose it (action, target,
plugin). ``str(error)`` is always a single actionable line.
"""

from typing import Any, Dict, List, Optional


class TrellisError(Exception):
    """Base class for all errors raised by Trellis."""

    type = "runtime"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        self.message = message
        self.detail: Dict[str, Any] = dict(detail or {})
        super().__init__(message)

    def with_context(self, **context: Any) -> "TrellisError":
        """
        Attach context to the error without overwriting existing keys.

        Returns:
            The same error instance, for re-raising.
        """
        for key, value in context.items():
            self.detail.setdefault(key, value)
        return self


class ConfigurationError(TrellisError):
    """Raised when the project or a module is configured incorrectly."""

    type = "configuration"


class PluginLoadError(TrellisError):
    """Raised when a set of plugins cannot be registered."""

    type = "plugin-load"


class NotFoundError(TrellisError):
    """Raised when deleting something that was never created."""

    type = "not-found"


class ParameterError(TrellisError):
    """Raised when a command or action is called with invalid arguments."""

    type = "parameter"


class UnknownServiceError(ParameterError):
    """Raised when one or more explicitly named services do not exist."""

    def __init__(self, missing: List[str], available: List[str]):
        self.missing = list(missing)
        self.available = list(available)
        super().__init__(
            f"Could not find service(s): {', '.join(self.missing)}. "
            f"Available services: {', '.join(self.available) or 'none'}",
            detail={"missing": self.missing, "available": self.available},
        )


class UnknownProviderError(ParameterError):
    """Raised when an action targets a provider that is not active."""

    def __init__(self, provider: str, available: List[str]):
        self.provider = provider
        super().__init__(
            f"Unknown provider: {provider}. "
            f"Active providers: {', '.join(available) or 'none'}",
            detail={"provider": provider, "available": list(available)},
        )


class UnsupportedActionError(TrellisError):
    """Raised when a mutating action has no handler for its target."""

    type = "unsupported"


class SchemaViolationError(TrellisError):
    """Raised when an action or command result does not match its schema."""

    type = "schema-violation"


class PluginError(TrellisError):
    """Raised when a plugin handler fails with an unstructured exception."""

    type = "plugin"


class NotConfirmedError(TrellisError):
    """Raised when a protected command is not confirmed."""

    type = "not-confirmed"


class PartialFailureError(TrellisError):
    """
    Raised when some entities of a multi-entity operation failed.

    The statuses of the entities that succeeded remain available on
    ``results`` so callers can still report them.
    """

    type = "partial-failure"

    def __init__(
        self,
        action: str,
        results: Dict[str, Any],
        errors: Dict[str, BaseException],
    ):
        self.action = action
        self.results = results
        self.errors = errors
        failed = ", ".join(f"{name} ({error})" for name, error in errors.items())
        super().__init__(
            f"{action} failed for {len(errors)} of "
            f"{len(errors) + len(results)} entities: {failed}",
            detail={"action": action, "failed": list(errors.keys())},
        )
