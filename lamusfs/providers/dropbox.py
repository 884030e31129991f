"""
Dropbox storage provider.

Talks to the Dropbox v2 HTTP API directly. Access tokens are short-lived
and handed out by the device API, which holds the long-lived refresh token
on the device's behalf.
"""

import asyncio
import json as jsonlib
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Mapping, Optional

import aiohttp
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

DROPBOX_ROOT_FOLDER = "/"


def _parse_timestamp(value: str) -> datetime:
    if not isinstance(value, str):
        raise BackendError(ErrorKind.TRANSPORT, f"Invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _reply_field(reply: Any, key: str, source: str) -> Any:
    if not isinstance(reply, dict) or key not in reply:
        raise BackendError(ErrorKind.TRANSPORT, f"{source}: reply is missing {key!r}")
    return reply[key]


class AccessTokenSource:
    """
    Bearer tokens for Dropbox, fetched from the device API.

    A cached token is reused until it is within ``expiry_buffer`` seconds
    of expiring, then a new one is requested before the next call.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        device_token: Optional[str] = None,
        expiry_buffer: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or settings.device_api.base_url).rstrip("/")
        self._device_token = device_token or settings.device_api.device_token
        self._expiry_buffer = timedelta(
            seconds=(
                expiry_buffer
                if expiry_buffer is not None
                else settings.dropbox.token_expiry_buffer
            )
        )
        self._timeout = timeout or settings.device_api.timeout
        self._transport = transport
        self._lock = asyncio.Lock()

        self.access_token: Optional[str] = None
        self.expires_at: Optional[datetime] = None

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        if not self.access_token or self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now + self._expiry_buffer >= self.expires_at

    async def get_token(self) -> str:
        async with self._lock:
            if self.needs_refresh():
                await self.refresh()
            assert self.access_token is not None
            return self.access_token

    async def refresh(self) -> None:
        headers = {}
        if self._device_token:
            headers["Authorization"] = f"Bearer {self._device_token}"

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{self._base_url}/dropbox/accessToken", headers=headers
            )

        if response.status_code != 200:
            raise BackendError(
                ErrorKind.AUTH,
                f"Could not get new access token from API: {response.status_code}",
            )

        data = response.json()
        source = "Access token API"
        self.access_token = _reply_field(data, "access_token", source)
        self.expires_at = _parse_timestamp(_reply_field(data, "expires_at", source))
        logger.info(f"Refreshed Dropbox access token, expires at {self.expires_at}")


class DropboxProvider(StorageProvider):
    """
    Dropbox storage provider.

    Listings are paginated by the backend with an opaque cursor; ``list``
    follows it to the end before returning. File revisions (``rev``) are the
    meta used for conflict-aware writes.
    """

    is_cloud = True

    def __init__(
        self,
        token_source: AccessTokenSource,
        name: str = "Dropbox",
        api_base_url: Optional[str] = None,
        content_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.name = name
        self._token_source = token_source
        self._api_base_url = api_base_url or settings.dropbox.api_base_url
        self._content_base_url = content_base_url or settings.dropbox.content_base_url
        self._timeout = timeout or settings.dropbox.timeout

        if not self._api_base_url.endswith("/"):
            self._api_base_url += "/"
        if not self._content_base_url.endswith("/"):
            self._content_base_url += "/"

        self._session: Optional[aiohttp.ClientSession] = None
        self._initialized = False

    def is_initialized(self) -> bool:
        return self._initialized

    @staticmethod
    def _to_dropbox_path(path: PathT, name: Optional[str] = None) -> str:
        segments = [segment for segment in [*path, name] if segment]
        if not segments:
            # list_folder addresses the root as an empty string
            return ""
        return DROPBOX_ROOT_FOLDER + "/".join(segments)

    @staticmethod
    def _reference_to_entry(reference: dict[str, Any]) -> Optional[FileEntry]:
        if not isinstance(reference, dict):
            raise BackendError(
                ErrorKind.TRANSPORT, f"files/list_folder: bad entry {reference!r}"
            )
        match reference.get(".tag"):
            case "file":
                modified = reference.get("server_modified")
                return FileEntry(
                    file_name=_reply_field(reference, "name", "files/list_folder"),
                    size=reference.get("size", 0),
                    modified=_parse_timestamp(modified) if modified else None,
                )
            case "folder":
                return FileEntry(
                    file_name=_reply_field(reference, "name", "files/list_folder"),
                    size=0,
                    dir=True,
                )
            case _:
                # deleted references
                return None

    @staticmethod
    def _raise_for_status(endpoint: str, status: int, body: bytes) -> None:
        if status < 400:
            return

        text = body.decode("utf-8", errors="replace")
        if status == 401:
            raise BackendError(ErrorKind.AUTH, f"{endpoint}: unauthorized ({text[:200]})")

        if status == 409:
            try:
                error = jsonlib.loads(text)
            except ValueError:
                error = None
            summary = error.get("error_summary") if isinstance(error, dict) else None
            if not isinstance(summary, str):
                summary = text
            if "not_found" in summary:
                raise BackendError(ErrorKind.NOT_FOUND, f"{endpoint}: {summary}")
            if "conflict" in summary:
                raise BackendError(ErrorKind.ALREADY_EXISTS, f"{endpoint}: {summary}")
            raise BackendError(ErrorKind.TRANSPORT, f"{endpoint}: {summary}")

        raise BackendError(ErrorKind.TRANSPORT, f"{endpoint}: {status} {text[:200]}")

    @staticmethod
    def _decode(endpoint: str, body: bytes) -> dict[str, Any]:
        reply = jsonlib.loads(body)
        if not isinstance(reply, dict):
            raise BackendError(
                ErrorKind.TRANSPORT,
                f"{endpoint}: expected a JSON object, got {body[:200]!r}",
            )
        return reply

    async def _send_request(
        self,
        url: str,
        headers: dict[str, str],
        data: Optional[bytes] = None,
        json: Any = None,
    ) -> tuple[int, bytes, Mapping[str, str]]:
        assert self._session is not None
        async with self._session.post(
            url, headers=headers, data=data, json=json
        ) as response:
            body = await response.read()
            return response.status, body, dict(response.headers)

    async def _rpc(self, endpoint: str, arg: dict[str, Any]) -> dict[str, Any]:
        token = await self._token_source.get_token()
        status, body, _ = await self._send_request(
            self._api_base_url + endpoint,
            headers={"Authorization": f"Bearer {token}"},
            json=arg,
        )
        self._raise_for_status(endpoint, status, body)
        return self._decode(endpoint, body) if body else {}

    async def _upload(self, arg: dict[str, Any], content: bytes) -> dict[str, Any]:
        token = await self._token_source.get_token()
        status, body, _ = await self._send_request(
            self._content_base_url + "files/upload",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": jsonlib.dumps(arg),
            },
            data=content,
        )
        self._raise_for_status("files/upload", status, body)
        return self._decode("files/upload", body)

    async def _download(self, dropbox_path: str) -> AsyncGenerator[bytes, None]:
        assert self._session is not None
        token = await self._token_source.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Dropbox-API-Arg": jsonlib.dumps({"path": dropbox_path}),
        }
        async with self._session.post(
            self._content_base_url + "files/download", headers=headers
        ) as response:
            if response.status >= 400:
                self._raise_for_status(
                    "files/download", response.status, await response.read()
                )
            async for chunk in response.content.iter_chunked(settings.chunk_size):
                yield chunk

    @log_failure("Dropbox init")
    async def init(self) -> InitResult:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )

        try:
            reply = await self._rpc("check/user", {"query": "hello"})
            if reply.get("result") != "hello":
                raise BackendError(
                    ErrorKind.TRANSPORT,
                    "Unable to initialize Dropbox FileSystem provider",
                )
        except BaseException:
            await self.close()
            raise

        self._initialized = True
        logger.info(f"Dropbox provider {self.name!r} initialized")
        return InitSuccess()

    @log_failure("Dropbox list {path}")
    async def list(self, path: PathT) -> ListResult:
        self._require_initialized()

        references: list[dict[str, Any]] = []
        page = await self._rpc(
            "files/list_folder",
            {"path": self._to_dropbox_path(path), "recursive": False},
        )
        references.extend(page.get("entries", []))

        while page.get("has_more"):
            cursor = _reply_field(page, "cursor", "files/list_folder")
            page = await self._rpc("files/list_folder/continue", {"cursor": cursor})
            references.extend(page.get("entries", []))

        files = [
            entry
            for entry in map(self._reference_to_entry, references)
            if entry is not None
        ]
        return ListSuccess(files=files)

    @log_failure("Dropbox access {path}/{name}")
    async def access(self, path: PathT, name: str) -> AccessResult:
        self._require_initialized()

        try:
            metadata = await self._rpc(
                "files/get_metadata", {"path": self._to_dropbox_path(path, name)}
            )
        except BackendError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                return AccessSuccess(found=False)
            raise

        tag = metadata.get(".tag")
        return AccessSuccess(
            found=tag in ("file", "folder"),
            dir=tag == "folder",
            meta=metadata.get("rev") if tag == "file" else None,
        )

    @log_failure("Dropbox mkdir {path}/{name}")
    async def mkdir(self, path: PathT, name: str) -> MkDirResult:
        self._require_initialized()

        dropbox_path = self._to_dropbox_path(path, name)
        try:
            await self._rpc(
                "files/create_folder_v2", {"path": dropbox_path, "autorename": False}
            )
        except BackendError as e:
            if e.kind is not ErrorKind.ALREADY_EXISTS:
                raise
            metadata = await self._rpc("files/get_metadata", {"path": dropbox_path})
            if metadata.get(".tag") != "folder":
                raise
        return MkDirSuccess()

    @log_failure("Dropbox unlink {path}/{file_name}")
    async def unlink(self, path: PathT, file_name: str) -> DeleteResult:
        self._require_initialized()

        await self._rpc(
            "files/delete_v2", {"path": self._to_dropbox_path(path, file_name)}
        )
        return DeleteSuccess()

    @log_failure("Dropbox rename {path}/{old_name}")
    async def rename(self, path: PathT, old_name: str, new_name: str) -> RenameResult:
        self._require_initialized()

        await self._rpc(
            "files/move_v2",
            {
                "from_path": self._to_dropbox_path(path, old_name),
                "to_path": self._to_dropbox_path(path, new_name),
                "autorename": False,
            },
        )
        return RenameSuccess()

    @log_failure("Dropbox read {path}/{file_name}")
    async def read(self, path: PathT, file_name: str) -> ReadResult:
        self._require_initialized()

        dropbox_path = self._to_dropbox_path(path, file_name)
        metadata = await self._rpc("files/get_metadata", {"path": dropbox_path})
        if metadata.get(".tag") != "file":
            raise BackendError(ErrorKind.NOT_FOUND, f"Not a file: {dropbox_path}")

        return ReadSuccess(
            data=Payload(lambda: self._download(dropbox_path), size=metadata.get("size")),
            meta=metadata.get("rev"),
        )

    @log_failure("Dropbox write {path}/{file_name}")
    async def write(
        self,
        path: PathT,
        file_name: str,
        data: Payload,
        meta: Any = None,
    ) -> WriteResult:
        self._require_initialized()

        content = await data.read()
        mode = {".tag": "update", "update": str(meta)} if meta else {".tag": "add"}

        try:
            result = await self._upload(
                {
                    "path": self._to_dropbox_path(path, file_name),
                    "mode": mode,
                    "autorename": True,
                },
                content,
            )
        except BackendError as e:
            if meta and e.kind is ErrorKind.ALREADY_EXISTS:
                raise BackendError(ErrorKind.CONFLICT, str(e)) from e
            raise

        final_name = result.get("name", file_name)
        if final_name != file_name:
            logger.info(f"Dropbox renamed {file_name!r} to {final_name!r} on upload")

        return WriteSuccess(file_name=final_name, meta=result.get("rev"))

    async def close(self) -> None:
        """Clean up the session"""
        self._initialized = False
        if self._session is not None:
            await self._session.close()
            self._session = None
