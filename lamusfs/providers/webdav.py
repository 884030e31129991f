"""
WebDAV storage provider.

Works against plain WebDAV servers and Nextcloud. Users often enter only the
Nextcloud host, so ``init`` probes the address once and falls back to the
Nextcloud WebDAV convention path when the bare address doesn't answer as a
WebDAV endpoint.
"""

import asyncio
import xml.etree.ElementTree as ET
from contextlib import aclosing
from email.utils import parsedate_to_datetime
from typing import Any, AsyncGenerator, Optional
from urllib.parse import quote, unquote, urlsplit

import httpx

from ..config import settings
from ..errors import BackendError, ErrorKind
from ..logger import log_failure, logger
from ..paths import PathT
from ..types import (
    AccessResult,
    AccessSuccess,
    DeleteResult,
    DeleteSuccess,
    FileEntry,
    InitResult,
    InitSuccess,
    ListResult,
    ListSuccess,
    MkDirResult,
    MkDirSuccess,
    Payload,
    ReadResult,
    ReadSuccess,
    RenameResult,
    RenameSuccess,
    WriteResult,
    WriteSuccess,
)
from .base import StorageProvider

NEXTCLOUD_DAV_MARKER = "/remote.php/dav/files/"
DAV_NAMESPACES = {"d": "DAV:"}

PROPFIND_BODY = b"""<?xml version="1.0"?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:resourcetype/>
    <d:getcontentlength/>
    <d:getlastmodified/>
    <d:getetag/>
  </d:prop>
</d:propfind>"""


def _status_to_kind(status: int) -> ErrorKind:
    if status in (401, 403):
        return ErrorKind.AUTH
    if status in (404, 409):
        # 409 on MKCOL/PUT means a missing parent collection
        return ErrorKind.NOT_FOUND
    if status == 412:
        return ErrorKind.CONFLICT
    return ErrorKind.TRANSPORT


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.status_code < 400:
        return
    raise BackendError(
        _status_to_kind(response.status_code),
        f"{action} failed: {response.status_code} {response.reason_phrase}",
    )


class WebDAVProvider(StorageProvider):
    """
    WebDAV storage provider.

    All files live below ``root_folder`` on the server, which is created on
    first use. The server's ETag is the meta used for conflict-aware writes.
    """

    is_cloud = True

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        name: str = "Nextcloud",
        root_folder: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.name = name
        self.url = url
        self._user = user
        self._password = password
        self._root_folder = "/" + (root_folder or settings.webdav.root_folder).strip("/")
        self._timeout = timeout or settings.webdav.timeout
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._root_ready = False
        self._root_lock = asyncio.Lock()

    def is_initialized(self) -> bool:
        return self._client is not None

    def _make_client(self, base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            auth=(self._user, self._password),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _probe(self, url: str) -> bool:
        """Check that ``url`` answers PROPFIND like a WebDAV collection."""
        try:
            async with self._make_client(url) as client:
                response = await client.request(
                    "PROPFIND", "", headers={"Depth": "0"}
                )
            return response.status_code == 207
        except httpx.HTTPError as e:
            logger.info(f"WebDAV probe of {url} failed: {e}")
            return False

    async def _fix_url(self) -> None:
        if NEXTCLOUD_DAV_MARKER in self.url:
            return
        if await self._probe(self.url):
            return

        convention = settings.webdav.convention_path.format(user=quote(self._user))
        candidate = f"{self.url.rstrip('/')}/{convention.lstrip('/')}"
        if await self._probe(candidate):
            logger.info(f"Using WebDAV endpoint {candidate} instead of {self.url}")
            self.url = candidate

    def _href(self, path: PathT, name: Optional[str] = None) -> str:
        segments = [segment for segment in [*path, name] if segment]
        root = self._root_folder.strip("/")
        quoted = [quote(segment, safe="") for segment in [root, *segments] if segment]
        return "/".join(quoted)

    @property
    def _http(self) -> httpx.AsyncClient:
        self._require_initialized()
        assert self._client is not None
        return self._client

    async def _propfind(self, href: str, depth: str) -> httpx.Response:
        return await self._http.request(
            "PROPFIND",
            href,
            content=PROPFIND_BODY,
            headers={"Depth": depth, "Content-Type": "application/xml"},
        )

    async def _ensure_root(self) -> None:
        if self._root_ready:
            return
        async with self._root_lock:
            if self._root_ready:
                return
            response = await self._propfind(self._href([]), "0")
            if response.status_code == 404:
                await self._make_collections([])
                logger.info(f"Created WebDAV root folder {self._root_folder}")
            else:
                _raise_for_status(response, "Checking root folder")
            self._root_ready = True

    async def _make_collections(self, segments: PathT) -> None:
        """MKCOL every level of ``segments`` below the root; existing is fine."""
        for depth in range(len(segments) + 1):
            response = await self._http.request("MKCOL", self._href(segments[:depth]))
            # 405: the collection already exists
            if response.status_code not in (201, 405):
                _raise_for_status(response, "MKCOL")

    @staticmethod
    def _parse_multistatus(text: str) -> list[tuple[str, dict[str, Any]]]:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise BackendError(
                ErrorKind.TRANSPORT, f"Failed to parse PROPFIND response: {e}"
            ) from e

        results = []
        for response_elem in root.findall("d:response", DAV_NAMESPACES):
            href = response_elem.findtext("d:href", default="", namespaces=DAV_NAMESPACES)
            prop = response_elem.find("d:propstat/d:prop", DAV_NAMESPACES)
            props: dict[str, Any] = {"dir": False, "size": 0}
            if prop is not None:
                props["dir"] = (
                    prop.find("d:resourcetype/d:collection", DAV_NAMESPACES) is not None
                )
                length = prop.findtext("d:getcontentlength", namespaces=DAV_NAMESPACES)
                props["size"] = int(length) if length else 0
                modified = prop.findtext("d:getlastmodified", namespaces=DAV_NAMESPACES)
                props["modified"] = parsedate_to_datetime(modified) if modified else None
                props["etag"] = prop.findtext("d:getetag", namespaces=DAV_NAMESPACES)
            results.append((unquote(urlsplit(href).path), props))
        return results

    @classmethod
    def _parse_single(cls, text: str) -> dict[str, Any]:
        """Properties of the one resource a Depth 0 PROPFIND describes."""
        entries = cls._parse_multistatus(text)
        if not entries:
            raise BackendError(
                ErrorKind.TRANSPORT, "PROPFIND response describes no resource"
            )
        return entries[0][1]

    @log_failure("WebDAV init")
    async def init(self) -> InitResult:
        await self._fix_url()
        self._client = self._make_client(self.url)
        logger.info(f"WebDAV provider {self.name!r} initialized at {self.url}")
        return InitSuccess()

    @log_failure("WebDAV list {path}")
    async def list(self, path: PathT) -> ListResult:
        await self._ensure_root()

        href = self._href(path)
        response = await self._propfind(href + "/", "1")
        _raise_for_status(response, f"Listing {href}")

        request_path = unquote(urlsplit(str(response.request.url)).path).rstrip("/")
        files = []
        for entry_path, props in self._parse_multistatus(response.text):
            # the collection itself comes back as one of the responses
            if entry_path.rstrip("/") == request_path:
                continue
            files.append(
                FileEntry(
                    file_name=entry_path.rstrip("/").rsplit("/", 1)[-1],
                    dir=props["dir"],
                    size=0 if props["dir"] else props["size"],
                    modified=props.get("modified"),
                )
            )
        return ListSuccess(files=files)

    @log_failure("WebDAV access {path}/{name}")
    async def access(self, path: PathT, name: str) -> AccessResult:
        await self._ensure_root()

        response = await self._propfind(self._href(path, name), "0")
        if response.status_code == 404:
            return AccessSuccess(found=False)
        _raise_for_status(response, "PROPFIND")

        props = self._parse_single(response.text)
        return AccessSuccess(found=True, dir=props["dir"], meta=props.get("etag"))

    @log_failure("WebDAV mkdir {path}/{name}")
    async def mkdir(self, path: PathT, name: str) -> MkDirResult:
        await self._ensure_root()

        await self._make_collections([*path, name])
        return MkDirSuccess()

    @log_failure("WebDAV unlink {path}/{file_name}")
    async def unlink(self, path: PathT, file_name: str) -> DeleteResult:
        await self._ensure_root()

        response = await self._http.delete(self._href(path, file_name))
        _raise_for_status(response, "DELETE")
        return DeleteSuccess()

    @log_failure("WebDAV rename {path}/{old_name}")
    async def rename(self, path: PathT, old_name: str, new_name: str) -> RenameResult:
        await self._ensure_root()

        destination = self._http.base_url.join(self._href(path, new_name))
        response = await self._http.request(
            "MOVE",
            self._href(path, old_name),
            headers={"Destination": str(destination), "Overwrite": "F"},
        )
        if response.status_code == 412:
            raise BackendError(ErrorKind.ALREADY_EXISTS, f"{new_name} already exists")
        _raise_for_status(response, "MOVE")
        return RenameSuccess()

    async def _download(self, href: str) -> AsyncGenerator[bytes, None]:
        async with self._http.stream("GET", href) as response:
            _raise_for_status(response, "GET")
            async for chunk in response.aiter_bytes(settings.chunk_size):
                yield chunk

    @log_failure("WebDAV read {path}/{file_name}")
    async def read(self, path: PathT, file_name: str) -> ReadResult:
        await self._ensure_root()

        href = self._href(path, file_name)
        response = await self._propfind(href, "0")
        _raise_for_status(response, "PROPFIND")

        props = self._parse_single(response.text)
        if props["dir"]:
            raise BackendError(ErrorKind.NOT_FOUND, f"Not a file: {file_name}")

        return ReadSuccess(
            data=Payload(lambda: self._download(href), size=props["size"]),
            meta=props.get("etag"),
        )

    @log_failure("WebDAV write {path}/{file_name}")
    async def write(
        self,
        path: PathT,
        file_name: str,
        data: Payload,
        meta: Any = None,
    ) -> WriteResult:
        await self._ensure_root()

        headers = {"Content-Type": "application/octet-stream"}
        if meta:
            headers["If-Match"] = str(meta)

        # The source stream is closed on every way out of this block,
        # including cancellation of the upload.
        async with aclosing(data.stream()) as source:

            async def body() -> AsyncGenerator[bytes, None]:
                async for chunk in source:
                    yield chunk

            response = await self._http.put(
                self._href(path, file_name), content=body(), headers=headers
            )

        _raise_for_status(response, "PUT")
        return WriteSuccess(file_name=file_name, meta=response.headers.get("ETag"))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._root_ready = False
