"""Project-specific exception types."""

from __future__ import annotations

from typing import Iterator, TypeVar

E = TypeVar('E', bound=BaseException)


class OxVMError(RuntimeError):
    """Base error for domain-level oxvm failures."""


class RequiredOptionError(OxVMError):
    """Raised when a required driver option has no value."""

    def __init__(self, option: str):
        self.option = option
        super().__init__(f'required option {option!r} not set')


class OptionParseError(OxVMError):
    """Raised when a driver option value cannot be parsed.

    The underlying parse error is kept as ``__cause__`` and ``err``.
    """

    def __init__(self, option: str, err: Exception):
        self.option = option
        self.err = err
        super().__init__(f'failed parsing option {option!r}: {err}')
        self.__cause__ = err


class SizeError(ValueError):
    """Base for size string failures."""


class SizeSyntaxError(SizeError):
    """The size string is not a number with an optional known unit."""


class SizeTooLargeError(SizeError):
    """The size parses but exceeds the supported maximum."""


class SpecParseError(ValueError):
    """A compound resource specification string is malformed."""


class ConfigErrors(OxVMError):
    """Every problem found while validating driver configuration.

    Iterating yields the constituent errors in the order they were found.

    Example:
        >>> from oxvm.errors import ConfigErrors, RequiredOptionError
        >>> errs = ConfigErrors([RequiredOptionError('oxide-host')])
        >>> [e.option for e in errs.of_type(RequiredOptionError)]
        ['oxide-host']
    """

    def __init__(self, errors: list[Exception]):
        self.errors = list(errors)
        super().__init__('\n'.join(str(e) for e in self.errors))

    def __iter__(self) -> Iterator[Exception]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def of_type(self, cls: type[E]) -> list[E]:
        return [e for e in self.errors if isinstance(e, cls)]


class PreflightError(OxVMError):
    """Raised when pre-create checks fail."""


class RemoteOperationError(OxVMError):
    """Raised when an Oxide API call fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str = '',
        request_id: str = '',
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.request_id = request_id
        super().__init__(message)


class StopTimeoutError(OxVMError, TimeoutError):
    """Raised when an instance does not reach stopped before the deadline."""


class NoNetworkInterfaceError(OxVMError):
    """Raised when a created instance has no usable network interface."""
