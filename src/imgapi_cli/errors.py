"""Error types for imgapi-cli.

Two layers live here. ``ImgapiClientError`` and its subclasses are raised by
``ImgapiClient`` and describe what happened on the wire. ``ImgapiCliError``
and its subclasses are what the command line surfaces to the operator: every
one carries a stable ``code`` and an ``exit_status``.
"""

from __future__ import annotations

from typing import Sequence


class ImgapiClientError(RuntimeError):
    """Base client error."""


class ImgapiTransportError(ImgapiClientError):
    """The registry could not be reached or the connection failed."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ImgapiRequestError(ImgapiClientError):
    """The registry answered with an HTTP error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        body: object | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.body = body

    @property
    def structured(self) -> bool:
        return isinstance(self.body, dict) and isinstance(self.code, str)


class ImgapiCliError(Exception):
    """Base CLI error with a CamelCase ``code`` and a process exit status."""

    code = "ImgapiCliError"
    exit_status = 1

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        cause: BaseException | None = None,
        exit_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if exit_status is not None:
            self.exit_status = exit_status
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class UnknownOptionError(ImgapiCliError):
    code = "UnknownOption"

    def __init__(self, options: Sequence[str]) -> None:
        self.options = list(options)
        quoted = ", ".join(f'"{opt}"' for opt in self.options)
        noun = "option" if len(self.options) == 1 else "options"
        super().__init__(f"unknown {noun}: {quoted}")


class UnknownCommandError(ImgapiCliError):
    code = "UnknownCommand"

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f'unknown command: "{command}"')


class NoHelpError(ImgapiCliError):
    """A known command without any help text."""

    code = "UnknownCommand"

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f'no help for "{command}"')


class UsageError(ImgapiCliError):
    code = "Usage"


class InvalidFieldError(UsageError):
    code = "InvalidField"

    def __init__(self, kind: str, field: str) -> None:
        self.kind = kind
        self.field = field
        super().__init__(f'invalid {kind} field: "{field}"')


class InvalidUUIDError(ImgapiCliError):
    code = "InvalidUUID"

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f'invalid uuid: "{value}"')


class InvalidManifestDataError(ImgapiCliError):
    code = "InvalidManifestData"


class IntegrityError(ImgapiCliError):
    """A transfer completed but its payload failed verification."""

    code = "IntegrityError"


class ChecksumError(IntegrityError):
    code = "ChecksumError"

    def __init__(self, algorithm: str, expected: str, actual: str) -> None:
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual
        super().__init__(f"{algorithm} checksum mismatch: expected {expected}, got {actual}")


class SizeMismatchError(IntegrityError):
    code = "SizeMismatch"

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"size mismatch: expected {expected} bytes, got {actual} bytes")


class APIError(ImgapiCliError):
    """A structured error body returned by the registry."""

    def __init__(self, cause: ImgapiRequestError) -> None:
        body = cause.body if isinstance(cause.body, dict) else {}
        message = body.get("message") if isinstance(body.get("message"), str) else str(cause)
        super().__init__(message, code=cause.code or "APIError", cause=cause)
        self.status_code = cause.status_code


class ClientError(ImgapiCliError):
    """A transport-level failure without a structured error body."""

    code = "ClientError"

    def __init__(
        self, message: str, *, transport_code: str | None = None, cause: BaseException | None = None
    ) -> None:
        super().__init__(message, cause=cause)
        self.transport_code = transport_code


class InternalError(ImgapiCliError):
    code = "InternalError"


class MultiError(ImgapiCliError):
    code = "MultiError"

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        lines = [f"{len(self.errors)} errors:"]
        for err in self.errors:
            code = getattr(err, "code", type(err).__name__)
            lines.append(f"    {code}: {err}")
        super().__init__("\n".join(lines), cause=self.errors[0] if self.errors else None)


def classify_error(exc: BaseException) -> ImgapiCliError:
    """Wrap any failure in the CLI error taxonomy."""
    if isinstance(exc, ImgapiCliError):
        return exc
    if isinstance(exc, ImgapiRequestError):
        if exc.structured:
            return APIError(exc)
        transport_code = f"HTTP{exc.status_code}" if exc.status_code else None
        return ClientError(str(exc), transport_code=transport_code, cause=exc)
    if isinstance(exc, ImgapiTransportError):
        return ClientError(str(exc), transport_code=exc.code, cause=exc)
    return InternalError(f"{type(exc).__name__}: {exc}", cause=exc)
