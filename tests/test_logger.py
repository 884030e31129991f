"""
Tests for the log_failure decorator and the log rotator.

Tests cover:
- Conversion of backend and transport exceptions into Failure results
- Error kind classification
- Prefix formatting with parameter substitution
- Defect errors passing through untouched
- gzip compression of rotated log files
"""

import gzip
import logging
import logging.handlers

import httpx
import pytest

from lamusfs.errors import BackendError, ErrorKind, NotInitializedError
from lamusfs.logger import classify_exception, log_failure, rotator
from lamusfs.types import Failure, MkDirSuccess


class TestLogFailure:
    @pytest.mark.asyncio
    async def test_backend_error_becomes_failure(self, caplog):
        @log_failure("Listing")
        async def list_dir():
            raise BackendError(ErrorKind.NOT_FOUND, "no such folder")

        result = await list_dir()

        assert isinstance(result, Failure)
        assert result.ok is False
        assert result.kind == ErrorKind.NOT_FOUND
        assert result.error == "no such folder"
        assert "Listing: not_found: BackendError: no such folder" in caplog.text
        assert "WARNING" in caplog.text

    @pytest.mark.asyncio
    async def test_success_passes_through(self, caplog):
        @log_failure("Creating")
        async def make():
            return MkDirSuccess()

        result = await make()

        assert result == MkDirSuccess()
        assert caplog.text == ""

    @pytest.mark.asyncio
    async def test_prefix_parameter_substitution(self, caplog):
        class Adapter:
            @log_failure("Reading {path}/{file_name}")
            async def read(self, path, file_name):
                raise FileNotFoundError("gone")

        result = await Adapter().read(["docs"], "a.txt")

        assert result.kind == ErrorKind.NOT_FOUND
        assert "Reading ['docs']/a.txt: not_found" in caplog.text
        # self is not part of the logged arguments
        assert "self=" not in caplog.text
        assert "path=['docs'], file_name='a.txt'" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_prefix_parameter_falls_back(self, caplog):
        @log_failure("Op {missing}")
        async def op(value):
            raise OSError("disk")

        result = await op(1)

        assert result.kind == ErrorKind.TRANSPORT
        assert "Failed to format prefix" in caplog.text
        assert "Op {missing}: transport: OSError: disk" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_message_uses_exception_name(self):
        @log_failure()
        async def op():
            raise httpx.ConnectError("")

        result = await op()

        assert result.kind == ErrorKind.TRANSPORT
        assert result.error == "ConnectError"

    @pytest.mark.asyncio
    async def test_defect_errors_are_reraised(self):
        @log_failure("Op")
        async def op():
            raise NotInitializedError("Dropbox")

        with pytest.raises(NotInitializedError, match="Dropbox"):
            await op()

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self):
        @log_failure("Op")
        async def op():
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await op()


class TestClassifyException:
    def test_os_errors(self):
        assert classify_exception(FileNotFoundError()) == ErrorKind.NOT_FOUND
        assert classify_exception(NotADirectoryError()) == ErrorKind.NOT_FOUND
        assert classify_exception(FileExistsError()) == ErrorKind.ALREADY_EXISTS
        assert classify_exception(PermissionError()) == ErrorKind.AUTH
        assert classify_exception(OSError()) == ErrorKind.TRANSPORT

    def test_http_status_errors(self):
        request = httpx.Request("GET", "https://dav.example.com/")
        unauthorized = httpx.HTTPStatusError(
            "401", request=request, response=httpx.Response(401, request=request)
        )
        server_error = httpx.HTTPStatusError(
            "500", request=request, response=httpx.Response(500, request=request)
        )

        assert classify_exception(unauthorized) == ErrorKind.AUTH
        assert classify_exception(server_error) == ErrorKind.TRANSPORT

    def test_backend_error_keeps_kind(self):
        error = BackendError(ErrorKind.CONFLICT, "stale")
        assert classify_exception(error) == ErrorKind.CONFLICT


class TestLogRotation:
    def test_log_rotation_with_compression(self, tmp_path):
        """Rotated log files are gzip-compressed and the source removed."""
        log_file = tmp_path / "test.log"

        test_logger = logging.getLogger("test_rotation")
        test_logger.setLevel(logging.INFO)
        test_logger.handlers.clear()

        handler = logging.handlers.TimedRotatingFileHandler(
            log_file, when="S", backupCount=5
        )
        handler.rotator = rotator
        test_logger.addHandler(handler)

        for i in range(10):
            test_logger.info(f"Test log message {i}")

        handler.doRollover()
        handler.close()
        test_logger.removeHandler(handler)

        compressed = list(tmp_path.glob("test.log.*.gz"))
        assert len(compressed) == 1

        with gzip.open(compressed[0], "rt") as f:
            content = f.read()
        assert "Test log message 0" in content
        assert "Test log message 9" in content
