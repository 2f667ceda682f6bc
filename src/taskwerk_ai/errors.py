"""Exception hierarchy for taskwerk-ai."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class TaskwerkAIError(Exception):
    """Base exception for all taskwerk-ai errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(TaskwerkAIError):
    """Missing credential, unknown provider, or unset provider/model selection."""


class NetworkError(TaskwerkAIError):
    """Connection refused, DNS failure, or timeout talking to a backend."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider


class ProviderAPIError(TaskwerkAIError):
    """Backend answered with a non-2xx status.

    ``str(err)`` is the user-facing message produced by the adapter's
    ``parse_error``; ``raw_message`` keeps what the backend actually said.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        raw_message: str | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.provider = provider
        self.raw_message = raw_message if raw_message is not None else message
        self.retry_after_s = retry_after_s


class RateLimitError(ProviderAPIError):
    """Rate limit exceeded (HTTP 429)."""


class StreamDecodeError(TaskwerkAIError):
    """A streamed line could not be decoded into an envelope."""


class ToolError(TaskwerkAIError):
    """Base class for errors scoped to a single tool call."""


class ToolNotFoundError(ToolError):
    """The model asked for a tool that is not registered."""


class ToolValidationError(ToolError):
    """Tool-call arguments were malformed or failed schema validation."""


class PermissionDeniedError(ToolError):
    """The action was refused by the user or by policy."""


class SandboxViolationError(PermissionDeniedError):
    """A tool path resolved outside the working-directory root."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
