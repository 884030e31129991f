"""
Address and path helpers.

An address names a file or directory on a provider:

    "<provider_id>:/<segment>/<segment>/<file_name>"

A trailing separator marks a directory address (no file name).
"""

from typing import NamedTuple, Optional, Sequence
from urllib.parse import quote, unquote, urlsplit

PROVIDER_SEPARATOR = ":"
FILE_PATH_SEPARATOR = "/"

PathT = list[str]


class Address(NamedTuple):
    provider_id: Optional[str]
    path: PathT
    file_name: Optional[str]


def serialize(
    provider_id: str, path: Sequence[str], file_name: Optional[str] = None
) -> str:
    segments = [segment for segment in path if segment]
    body = FILE_PATH_SEPARATOR.join(segments)
    if file_name:
        body = f"{body}{FILE_PATH_SEPARATOR}{file_name}" if body else file_name
    elif body:
        body += FILE_PATH_SEPARATOR

    return f"{provider_id}{PROVIDER_SEPARATOR}{FILE_PATH_SEPARATOR}{body}"


def deserialize(address: str) -> Address:
    """
    Split an address into provider, path and file name.

    The provider prefix is optional; ``provider_id`` is None when it is
    missing and the caller decides which provider is meant.
    """
    provider_id: Optional[str] = None
    rest = address

    split = rest.split(PROVIDER_SEPARATOR + FILE_PATH_SEPARATOR, 1)
    if len(split) > 1:
        provider_id, rest = split

    is_directory = rest == "" or rest.endswith(FILE_PATH_SEPARATOR)
    segments = [segment for segment in rest.split(FILE_PATH_SEPARATOR) if segment]

    file_name = None
    if not is_directory and segments:
        file_name = segments.pop()

    return Address(provider_id=provider_id, path=segments, file_name=file_name)


def normalize(path: Sequence[str]) -> PathT:
    """Apply "." and ".." segments. A ".." at the root is absorbed."""
    normalized: PathT = []

    for segment in path:
        if segment == ".":
            continue
        if segment == "..":
            if normalized:
                normalized.pop()
            continue
        normalized.append(segment)

    return normalized


def resolve_path(base: Sequence[str], *paths: Sequence[str]) -> PathT:
    joined = list(base)
    for path in paths:
        joined.extend(path)
    return normalize(joined)


def path_to_string(path: Sequence[str]) -> str:
    return FILE_PATH_SEPARATOR.join(path)


def to_url(
    provider_id: str, path: Sequence[str], file_name: Optional[str] = None
) -> str:
    segments = [quote(segment, safe="") for segment in path if segment]
    url = f"file://{provider_id}/" + "".join(f"{segment}/" for segment in segments)
    if file_name:
        url += quote(file_name, safe="")
    return url


def from_url(url: str) -> Address:
    parts = urlsplit(url)
    if parts.scheme != "file":
        raise ValueError(f"Unsupported protocol: {parts.scheme!r}")

    segments = parts.path.split(FILE_PATH_SEPARATOR)
    # a trailing slash leaves an empty last segment, i.e. no file name
    file_name = unquote(segments.pop()) or None
    path = [unquote(segment) for segment in segments if segment]

    # netloc keeps the provider identifier's case, hostname would lower it
    return Address(provider_id=parts.netloc or None, path=path, file_name=file_name)
