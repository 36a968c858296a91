"""Variable engine exceptions.

Exception Hierarchy:
    VariableError (base)
    ├── InvalidKeyFormatError (bad key, raised before persistence)
    ├── VariableNotFoundError (lookup by key failed)
    ├── MissingConfigError (strategy config incomplete)
    ├── UnsupportedMethodError (external strategy HTTP method)
    ├── RemoteRequestError (external strategy non-2xx / timeout / transport)
    └── StrategyExecutionError (query or service call failed)
        └── ServiceNotFoundError (no handler registered)

Example:
    >>> try:
    ...     value = await resolver.resolve(variable)
    ... except RemoteRequestError as e:
    ...     print(f"API returned {e.status}")
"""

from __future__ import annotations

from collections.abc import Sequence


class VariableError(Exception):
    """Base exception for all variable engine errors."""

    pass


class InvalidKeyFormatError(VariableError):
    """Variable key does not match the naming pattern.

    This is an input mistake, not a transient failure, so it always propagates
    to the caller and nothing is persisted.

    Attributes:
        key: The rejected key
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"Invalid key format: '{key}'. "
            "Use dot-separated identifiers, e.g. 'site.company_name'"
        )

    def __repr__(self) -> str:
        return f"InvalidKeyFormatError(key={self.key!r})"


class VariableNotFoundError(VariableError):
    """No variable is stored under the requested key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Variable '{key}' not found")


class MissingConfigError(VariableError):
    """A strategy's required config fields are absent.

    Attributes:
        variable_type: Type of the variable being resolved
        fields: Names of the missing fields (alternatives joined with ' or ')
    """

    def __init__(self, variable_type: str, fields: Sequence[str]) -> None:
        self.variable_type = variable_type
        self.fields = list(fields)
        super().__init__(
            f"{variable_type} variable requires {' or '.join(self.fields)} in config"
        )


class UnsupportedMethodError(VariableError):
    """External strategy received an HTTP method other than GET/POST."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Unsupported HTTP method: {method}")


class RemoteRequestError(VariableError):
    """External API request failed.

    Attributes:
        status: HTTP status code, or None when no response was received
            (timeout, connection failure)
        url: Requested URL
    """

    def __init__(self, status: int | None, url: str, detail: str | None = None) -> None:
        self.status = status
        self.url = url
        if status is not None:
            message = f"API request failed: {status}"
        else:
            message = f"API request failed: {detail or 'no response'}"
        super().__init__(message)

    def __repr__(self) -> str:
        return f"RemoteRequestError(status={self.status!r}, url={self.url!r})"


class StrategyExecutionError(VariableError):
    """A query or service call raised while resolving a variable."""

    pass


class ServiceNotFoundError(StrategyExecutionError):
    """No handler is registered for the requested service method."""

    def __init__(self, service: str, method: str, available: Sequence[str] = ()) -> None:
        self.service = service
        self.method = method
        message = f"No handler registered for {service}.{method}"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)


__all__ = [
    "VariableError",
    "InvalidKeyFormatError",
    "VariableNotFoundError",
    "MissingConfigError",
    "UnsupportedMethodError",
    "RemoteRequestError",
    "StrategyExecutionError",
    "ServiceNotFoundError",
]
