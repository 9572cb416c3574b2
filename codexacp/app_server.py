"""Async JSON-RPC client for `codex app-server --listen stdio://`.

The client only handles transport and multiplexing: it writes requests as
single JSON lines, waits for the matching response, and buffers any other
messages that arrive meanwhile so they can be consumed later in order.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Any, Optional, Protocol, Union

logger = logging.getLogger(__name__)

_CLIENT_VERSION = "0.1.0"
_STREAM_LIMIT = 64 * 1024 * 1024

RequestId = Union[int, str]
Message = dict[str, Any]


class AppServerError(Exception):
    """The app-server could not be reached or reported a failure."""


class _LineWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...


def _is_message(value: Any) -> bool:
    """Return True if value has the shape of a JSON-RPC message."""
    if not isinstance(value, dict):
        return False
    if "method" in value:
        return isinstance(value["method"], str)
    if "id" not in value or not isinstance(value["id"], (int, str)):
        return False
    if "result" in value:
        return True
    error = value.get("error")
    return (
        isinstance(error, dict)
        and isinstance(error.get("code"), int)
        and isinstance(error.get("message"), str)
    )


class AppServerProcess:
    """A connection to a running app-server speaking line-delimited JSON-RPC."""

    def __init__(
        self,
        writer: _LineWriter,
        reader: asyncio.StreamReader,
        process: Optional[asyncio.subprocess.Process] = None,
    ) -> None:
        self._writer = writer
        self._reader = reader
        self._process = process
        self._pending: deque[Message] = deque()
        self._next_id = 1

    @classmethod
    async def spawn(cls, codex_bin: str) -> "AppServerProcess":
        """Start `codex_bin app-server --listen stdio://` and connect to it."""
        try:
            process = await asyncio.create_subprocess_exec(
                codex_bin,
                "app-server",
                "--listen",
                "stdio://",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                limit=_STREAM_LIMIT,
            )
        except OSError as err:
            raise AppServerError(
                f"failed to start `{codex_bin}` app-server: {err}"
            ) from err
        if process.stdin is None:
            raise AppServerError("codex app-server stdin unavailable")
        if process.stdout is None:
            raise AppServerError("codex app-server stdout unavailable")
        return cls(process.stdin, process.stdout, process)

    async def __aenter__(self) -> "AppServerProcess":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the input stream and stop the child process if there is one."""
        try:
            self._writer.close()
        except (OSError, RuntimeError):
            pass
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def initialize(self, client_name: str, client_title: str) -> Any:
        """Perform the initialize handshake and send `initialized`."""
        params = {
            "clientInfo": {
                "name": client_name,
                "title": client_title,
                "version": _CLIENT_VERSION,
            },
            "capabilities": {"experimentalApi": True},
        }
        response = await self._request("initialize", params)
        await self._write_json({"method": "initialized"})
        return response

    async def model_list(self) -> Any:
        return await self._request("model/list", {})

    async def thread_start(self, params: Any) -> Any:
        return await self._request("thread/start", params)

    async def thread_resume(self, params: Any) -> Any:
        return await self._request("thread/resume", params)

    async def thread_list(self, params: Any) -> Any:
        return await self._request("thread/list", params)

    async def thread_compact_start(self, params: Any) -> Any:
        return await self._request("thread/compact/start", params)

    async def thread_rollback(self, params: Any) -> Any:
        return await self._request("thread/rollback", params)

    async def turn_start(self, params: Any) -> Any:
        return await self._request("turn/start", params)

    async def turn_interrupt(self, params: Any) -> Any:
        return await self._request("turn/interrupt", params)

    async def next_message(self) -> Message:
        """Return the next buffered message, or read one from the server."""
        if self._pending:
            return self._pending.popleft()
        return await self._read_message()

    async def send_command_approval_response(
        self, request_id: RequestId, response: Any
    ) -> None:
        await self._send_server_request_response(request_id, response)

    async def send_file_change_approval_response(
        self, request_id: RequestId, response: Any
    ) -> None:
        await self._send_server_request_response(request_id, response)

    async def send_tool_request_user_input_response(
        self, request_id: RequestId, response: Any
    ) -> None:
        await self._send_server_request_response(request_id, response)

    async def send_server_request_error(
        self,
        request_id: RequestId,
        code: int,
        message: str,
        data: Any = None,
    ) -> None:
        """Answer a server-initiated request with a JSON-RPC error."""
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        await self._write_json({"id": request_id, "error": error})

    def _take_request_id(self) -> int:
        request_id = self._next_id
        self._next_id += 1
        return request_id

    async def _request(self, method: str, params: Any) -> Any:
        request_id = self._take_request_id()
        await self._write_json({"id": request_id, "method": method, "params": params})
        while True:
            message = await self._read_message()
            if "method" not in message and message.get("id") == request_id:
                if "result" in message:
                    return message["result"]
                error = message["error"]
                raise AppServerError(
                    f"{method} failed: {error['message']} (code {error['code']})"
                )
            # Keep ordering stable: the event loop sees these later.
            self._pending.append(message)

    async def _send_server_request_response(
        self, request_id: RequestId, response: Any
    ) -> None:
        try:
            json.dumps(response)
        except (TypeError, ValueError) as err:
            raise AppServerError(
                f"failed to serialize server request response: {err}"
            ) from err
        await self._write_json({"id": request_id, "result": response})

    async def _read_message(self) -> Message:
        while True:
            try:
                raw = await self._reader.readline()
            except (OSError, ValueError) as err:
                raise AppServerError(f"failed to read app-server output: {err}") from err
            if not raw:
                raise AppServerError("codex app-server closed stdout")
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as err:
                logger.warning("Ignoring non JSON-RPC line from app-server: %s", err)
                continue
            if not _is_message(value):
                logger.warning("Ignoring non JSON-RPC line from app-server: %s", line)
                continue
            return value

    async def _write_json(self, payload: Any) -> None:
        try:
            line = json.dumps(payload, separators=(",", ":"))
        except (TypeError, ValueError) as err:
            raise AppServerError(f"failed to serialize JSON-RPC payload: {err}") from err
        try:
            self._writer.write((line + "\n").encode("utf-8"))
        except (OSError, RuntimeError) as err:
            raise AppServerError(f"failed to write app-server input: {err}") from err
        try:
            await self._writer.drain()
        except (OSError, RuntimeError) as err:
            raise AppServerError(f"failed to flush app-server input: {err}") from err