import functools
import gzip
import inspect
import logging
import logging.handlers
import os
import shutil
import sys
from gzip import GzipFile
from pathlib import Path
from typing import Awaitable, Callable, ParamSpec, TypeVar

import aiohttp
import httpx

from .config import settings
from .errors import BackendError, DefectError, ErrorKind
from .types import Failure

logger = logging.getLogger("lamusfs")
logger.setLevel(settings.log_level)
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)


def rotator(source, dest):
    with open(source, "rb") as f_in:
        with gzip.open(dest + ".gz", "wb") as f_out:
            assert isinstance(f_out, GzipFile)
            shutil.copyfileobj(f_in, f_out)
    os.remove(source)


if settings.logs_dir is not None:
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_file_handler = logging.handlers.TimedRotatingFileHandler(
        logs_dir / "lamusfs.log", when="midnight"
    )
    log_file_handler.setFormatter(formatter)
    log_file_handler.rotator = rotator
    logger.addHandler(log_file_handler)

log_stream_handler = logging.StreamHandler(sys.stdout)
log_stream_handler.setFormatter(formatter)
logger.addHandler(log_stream_handler)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map a backend or transport exception onto the error taxonomy."""
    if isinstance(exc, BackendError):
        return exc.kind
    if isinstance(exc, FileNotFoundError | NotADirectoryError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, FileExistsError | IsADirectoryError):
        return ErrorKind.ALREADY_EXISTS
    if isinstance(exc, PermissionError):
        return ErrorKind.AUTH
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (
        401,
        403,
    ):
        return ErrorKind.AUTH
    return ErrorKind.TRANSPORT


P = ParamSpec("P")
R = TypeVar("R")


def log_failure(
    prefix: str = "",
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R | Failure]]]:
    """
    Decorator turning exceptions of an async storage call into a Failure.

    Backend and transport exceptions are logged and returned as
    ``Failure(kind=..., error=...)``. Defect-class errors (uninitialized
    adapter, unknown provider) are re-raised untouched.

    Args:
        prefix: Optional prefix for the log message. Braces are formatted
            with the bound call arguments, e.g. ``"Listing {path}"``.

    Usage:
        @log_failure("Dropbox list {path}")
        async def list(self, path):
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R | Failure]]:
        # Get function signature for parameter binding
        sig = inspect.signature(func)
        func_name = func.__qualname__

        def format_args_kwargs(args: tuple, kwargs: dict) -> tuple[dict, str]:
            """
            Format function arguments for logging with parameter names.

            Returns:
                (bound_arguments_dict, formatted_string)
            """
            try:
                bound = sig.bind(*args, **kwargs)
                bound.apply_defaults()
                arguments = {
                    k: v for k, v in bound.arguments.items() if k != "self"
                }
                params = ", ".join(f"{k}={v!r}" for k, v in arguments.items())
                return arguments, f"[{params}] " if params else ""
            except TypeError as e:
                logger.warning(
                    f"Failed to bind arguments for function {func_name}: {e}",
                    stacklevel=3,  # format_args_kwargs -> wrapper -> user code
                )
                parts = []
                if args:
                    parts.append(f"args={args!r}")
                if kwargs:
                    parts.append(f"kwargs={kwargs!r}")
                return {}, f"[{', '.join(parts)}] " if parts else ""

        def format_prefix(bound_args: dict) -> str:
            """Format prefix with parameter substitution if braces present."""
            if not prefix:
                return ""

            if "{" in prefix and "}" in prefix:
                try:
                    formatted = prefix.format_map(bound_args)
                    return f"{formatted}: "
                except (KeyError, ValueError) as e:
                    logger.warning(
                        f"Failed to format prefix '{prefix}' with arguments: {e}",
                        stacklevel=3,  # format_prefix -> wrapper -> user code
                    )
                    return f"{prefix}: "
            else:
                return f"{prefix}: "

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R | Failure:
            try:
                return await func(*args, **kwargs)
            except DefectError:
                raise
            except (
                BackendError,
                OSError,
                ValueError,
                httpx.HTTPError,
                aiohttp.ClientError,
            ) as e:
                kind = classify_exception(e)
                bound_args, args_str = format_args_kwargs(args, kwargs)
                prefix_str = format_prefix(bound_args)
                logger.warning(
                    f"{args_str}{prefix_str}{kind.value}: {type(e).__name__}: {e}",
                    stacklevel=2,
                )
                return Failure(kind=kind, error=str(e) or type(e).__name__)

        return async_wrapper

    return decorator
