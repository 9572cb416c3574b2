import asyncio
import json

import pytest

from codexacp.app_server import AppServerError, AppServerProcess


class _Writer:
    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data):
        self.data.extend(data)

    async def drain(self):
        return None

    def close(self):
        self.closed = True

    def messages(self):
        return [json.loads(line) for line in self.data.decode().splitlines()]


def _make(*incoming):
    reader = asyncio.StreamReader()
    for item in incoming:
        if isinstance(item, str):
            reader.feed_data((item + "\n").encode())
        else:
            reader.feed_data((json.dumps(item) + "\n").encode())
    writer = _Writer()
    return AppServerProcess(writer, reader), writer, reader


@pytest.mark.asyncio
async def test_initialize_sends_request_and_initialized():
    app, writer, _ = _make({"id": 1, "result": {"userAgent": "x"}})
    result = await app.initialize("zed", "Zed")
    assert result == {"userAgent": "x"}
    sent = writer.messages()
    assert sent[0]["id"] == 1
    assert sent[0]["method"] == "initialize"
    assert sent[0]["params"]["clientInfo"]["name"] == "zed"
    assert sent[0]["params"]["clientInfo"]["title"] == "Zed"
    assert sent[0]["params"]["capabilities"]["experimentalApi"] is True
    assert sent[1] == {"method": "initialized"}


@pytest.mark.asyncio
async def test_unrelated_messages_are_buffered_in_order():
    note = {"method": "turn/started", "params": {"turnId": "t1"}}
    server_req = {"id": 5, "method": "item/tool/call", "params": {}}
    app, _, reader = _make(note, server_req, {"id": 1, "result": {"data": []}})
    assert await app.model_list() == {"data": []}
    assert await app.next_message() == note
    assert await app.next_message() == server_req
    reader.feed_data(b'{"method":"later"}\n')
    assert await app.next_message() == {"method": "later"}


@pytest.mark.asyncio
async def test_request_ids_increment():
    app, writer, _ = _make({"id": 1, "result": {}}, {"id": 2, "result": {}})
    await app.thread_start({"cwd": "/tmp"})
    await app.turn_interrupt({"threadId": "a", "turnId": "b"})
    sent = writer.messages()
    assert [m["id"] for m in sent] == [1, 2]
    assert [m["method"] for m in sent] == ["thread/start", "turn/interrupt"]
    assert sent[0]["params"] == {"cwd": "/tmp"}


@pytest.mark.parametrize(
    "call, method",
    [
        ("thread_resume", "thread/resume"),
        ("thread_list", "thread/list"),
        ("thread_compact_start", "thread/compact/start"),
        ("thread_rollback", "thread/rollback"),
        ("turn_start", "turn/start"),
    ],
)
@pytest.mark.asyncio
async def test_request_method_names(call, method):
    app, writer, _ = _make({"id": 1, "result": {"ok": True}})
    result = await getattr(app, call)({"threadId": "t"})
    assert result == {"ok": True}
    assert writer.messages()[0]["method"] == method


@pytest.mark.asyncio
async def test_error_response_raises():
    app, _, _ = _make({"id": 1, "error": {"code": -32000, "message": "boom"}})
    with pytest.raises(AppServerError) as info:
        await app.model_list()
    assert str(info.value) == "model/list failed: boom (code -32000)"


@pytest.mark.asyncio
async def test_non_json_and_blank_lines_are_skipped():
    app, _, _ = _make("not json", "", "   ", {"id": 1, "result": 7})
    assert await app.model_list() == 7


@pytest.mark.asyncio
async def test_closed_stdout_raises():
    app, _, reader = _make()
    reader.feed_eof()
    with pytest.raises(AppServerError, match="closed stdout"):
        await app.next_message()


@pytest.mark.asyncio
async def test_server_request_responses_are_written():
    app, writer, _ = _make()
    await app.send_command_approval_response(3, {"decision": "accept"})
    await app.send_file_change_approval_response("r4", {"decision": "decline"})
    await app.send_tool_request_user_input_response(5, {"answers": {}})
    assert writer.messages() == [
        {"id": 3, "result": {"decision": "accept"}},
        {"id": "r4", "result": {"decision": "decline"}},
        {"id": 5, "result": {"answers": {}}},
    ]


@pytest.mark.asyncio
async def test_server_request_error_with_and_without_data():
    app, writer, _ = _make()
    await app.send_server_request_error(9, -32601, "nope")
    await app.send_server_request_error(10, -32601, "nope", {"why": "x"})
    sent = writer.messages()
    assert sent[0] == {"id": 9, "error": {"code": -32601, "message": "nope"}}
    assert sent[1]["error"]["data"] == {"why": "x"}


@pytest.mark.asyncio
async def test_unserializable_response_raises():
    app, writer, _ = _make()
    with pytest.raises(AppServerError, match="failed to serialize"):
        await app.send_command_approval_response(1, {"bad": object()})
    assert writer.data == bytearray()


@pytest.mark.asyncio
async def test_spawn_missing_binary_raises():
    with pytest.raises(AppServerError, match="failed to start"):
        await AppServerProcess.spawn("/nonexistent/dir/codex-binary")


@pytest.mark.asyncio
async def test_context_manager_closes_writer():
    app, writer, _ = _make()
    async with app as entered:
        assert entered is app
    assert writer.closed is True