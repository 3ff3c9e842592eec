from __future__ import annotations

import inspect
import logging
import traceback
from enum import Enum
from typing import TYPE_CHECKING


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

    OnError = Callable[["InjectionError"], object] | None

# Lines of source reproduced in a diagnostic message
CONTEXT_LINES = 5


class ErrorCode(Enum):
    COULD_NOT_LOAD = 101
    NOT_A_FUNCTION = 102
    DEPENDENCY_NOT_FOUND = 103


class InjectionError(RuntimeError):
    """Raised (or handed to an ``on_error`` callback) when an injector cannot do its job.

    The message reads ``"<cause> (di: <injector name>)"``. When a failing function is
    known, the message also points at the file it was loaded from and reproduces the
    first lines of its source.
    """

    def __init__(
        self,
        injector_name: str,
        cause: str,
        code: ErrorCode,
        *,
        context: Callable[..., object] | None = None,
        origin: str | None = None,
    ) -> None:
        self.injector_name = injector_name
        self.cause = cause
        self.code = code
        self.origin = origin
        self.message = _format_message(injector_name, cause, context, origin)
        super().__init__(self.message)

    def format_trace(self) -> str:
        """Full trace text, including the chained failure this error was built from."""
        return "".join(traceback.format_exception(type(self), self, self.__traceback__))


def report(error: InjectionError, on_error: OnError) -> None:
    """Deliver `error` to `on_error`, or raise it when no callback was supplied."""
    if on_error is None:
        raise error

    logger.debug("Delivering %s to error callback: %s", error.code.name, error.cause)
    on_error(error)


def _format_message(
    injector_name: str,
    cause: str,
    context: Callable[..., object] | None,
    origin: str | None,
) -> str:
    message = f"{cause} (di: {injector_name})"
    if origin:
        message += f'\n  File "{origin}"'
    if context is not None:
        excerpt = _describe_callable(context)
        if excerpt:
            message += "\n".join(["", "... context ...", *excerpt, "...", ""])
    return message


def _describe_callable(fn: Callable[..., object]) -> list[str]:
    try:
        return inspect.getsource(fn).splitlines()[:CONTEXT_LINES]
    except (OSError, TypeError):
        pass

    # Source unavailable (builtins, REPL, C extensions): fall back to the signature.
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)
    try:
        return [f"{name}{inspect.signature(fn)}"]
    except (TypeError, ValueError):
        return []
