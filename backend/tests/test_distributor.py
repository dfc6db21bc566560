"""Distribution client — source scan, protoc driver, uploader and upload loop."""

import asyncio
import base64
import json
import subprocess
from pathlib import Path

import httpx
import pytest
from tenacity import wait_none

from app.distributor import cli
from app.distributor.client import DescriptorUploader, ServerUnavailable, UploadReceipt, UploadRejected
from app.distributor.protoc import CompilationError, ProtocCompiler
from app.distributor.runner import DistributionRunner, IntervalTicker
from app.distributor.sources import find_proto_sources, source_signature

SERVER = "http://validator.test"


@pytest.fixture()
def proto_tree(tmp_path: Path) -> Path:
    root = tmp_path / "proto"
    (root / "shop" / "v1").mkdir(parents=True)
    (root / "my_message.proto").write_text('syntax = "proto3";\nmessage MyMessage { string key1 = 1; }\n')
    (root / "shop" / "v1" / "order.proto").write_text('syntax = "proto3";\npackage shop.v1;\n')
    (root / "README.md").write_text("not a schema")
    return root


def _receipt_json(generation: int = 1, changed: bool = True) -> dict:
    return {
        "status": "loaded",
        "file_name": "proto.desc",
        "generation": generation,
        "fingerprint": "abc123",
        "changed": changed,
        "message_types": ["MyMessage"],
    }


# ── Sources ──


def test_find_proto_sources_is_recursive_and_sorted(proto_tree):
    sources = find_proto_sources(proto_tree)
    assert [p.relative_to(proto_tree).as_posix() for p in sources] == [
        "my_message.proto",
        "shop/v1/order.proto",
    ]


def test_missing_source_root_has_no_sources(tmp_path):
    assert find_proto_sources(tmp_path / "nope") == []


def test_signature_changes_when_a_source_changes(proto_tree):
    before = source_signature(find_proto_sources(proto_tree))
    (proto_tree / "my_message.proto").write_text('syntax = "proto3";\nmessage MyMessage { string key1 = 1; int32 key2 = 2; }\n')
    after = source_signature(find_proto_sources(proto_tree))

    assert before != after
    assert source_signature(find_proto_sources(proto_tree)) == after


# ── protoc ──


def test_protoc_command(proto_tree, tmp_path):
    compiler = ProtocCompiler("protoc")
    cmd = compiler.command(find_proto_sources(proto_tree), proto_tree, tmp_path / "out.pb")

    assert cmd[0] == "protoc"
    assert f"--proto_path={proto_tree}" in cmd
    assert "--include_imports" in cmd
    assert f"--descriptor_set_out={tmp_path / 'out.pb'}" in cmd
    assert cmd[-2:] == ["my_message.proto", str(Path("shop/v1/order.proto"))]


def test_compile_writes_one_descriptor_set(proto_tree, monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        out = next(a for a in cmd if a.startswith("--descriptor_set_out=")).split("=", 1)[1]
        Path(out).write_bytes(b"compiled")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert ProtocCompiler().compile(find_proto_sources(proto_tree), proto_tree) == b"compiled"
    assert len(calls) == 1


def test_compile_failure_carries_stderr(proto_tree, monkeypatch):
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="order.proto:3:1: Expected top-level statement")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(CompilationError) as exc_info:
        ProtocCompiler().compile(find_proto_sources(proto_tree), proto_tree)
    assert "Expected top-level statement" in str(exc_info.value)


def test_compile_without_sources(tmp_path):
    with pytest.raises(CompilationError, match="No .proto files"):
        ProtocCompiler().compile([], tmp_path)


def test_compile_with_missing_protoc(proto_tree):
    compiler = ProtocCompiler(str(proto_tree / "bin" / "protoc-missing"))
    with pytest.raises(CompilationError, match="protoc not found"):
        compiler.compile(find_proto_sources(proto_tree), proto_tree)


# ── Uploader ──


def _uploader(handler, max_attempts: int = 3) -> DescriptorUploader:
    return DescriptorUploader(
        SERVER,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
        wait=wait_none(),
    )


def test_upload_posts_base64_content():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_receipt_json())

    receipt = asyncio.run(_uploader(handler).upload(b"\x0a\x01x", "proto.desc"))

    assert receipt.generation == 1
    assert receipt.attempts == 1
    assert seen[0].url == httpx.URL(f"{SERVER}/load_descriptor")
    body = json.loads(seen[0].content)
    assert body["file_name"] == "proto.desc"
    assert base64.b64decode(body["file_content"]) == b"\x0a\x01x"


def test_upload_retries_server_errors():
    responses = iter([httpx.Response(503, text="busy"), httpx.Response(200, json=_receipt_json())])

    receipt = asyncio.run(_uploader(lambda request: next(responses)).upload(b"x", "proto.desc"))
    assert receipt.attempts == 2


def test_upload_retries_transport_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=_receipt_json())

    receipt = asyncio.run(_uploader(handler).upload(b"x", "proto.desc"))
    assert receipt.attempts == 2


def test_upload_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    with pytest.raises(ServerUnavailable):
        asyncio.run(_uploader(handler, max_attempts=3).upload(b"x", "proto.desc"))
    assert len(calls) == 3


def test_rejection_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            400,
            json={"error": "registry_rejected", "message": "not self-consistent", "problems": ["bad ref"]},
        )

    with pytest.raises(UploadRejected) as exc_info:
        asyncio.run(_uploader(handler).upload(b"x", "proto.desc"))

    assert len(calls) == 1
    assert exc_info.value.status_code == 400
    assert exc_info.value.problems == ["bad ref"]


def test_upload_into_the_running_service(client, sample_payload):
    """The uploader's request is accepted by the real endpoint."""

    def handler(request: httpx.Request) -> httpx.Response:
        resp = client.post(request.url.path, content=request.content, headers={"Content-Type": "application/json"})
        return httpx.Response(resp.status_code, content=resp.content, headers={"Content-Type": "application/json"})

    receipt = asyncio.run(_uploader(handler).upload(sample_payload, "proto.desc"))

    assert "MyMessage" in receipt.message_types
    assert client.get("/descriptors").json()["source"] == "proto.desc"


# ── Runner ──


class FakeCompiler:
    def __init__(self, failures: int = 0):
        self.calls = 0
        self.failures = failures

    def compile(self, sources, include_root):
        self.calls += 1
        if self.calls <= self.failures:
            raise CompilationError("protoc exited with status 1", stderr="syntax error")
        return b"descriptor-set"


class FakeUploader:
    def __init__(self, stop_after=None, stop_event=None):
        self.payloads = []
        self.stop_after = stop_after
        self.stop_event = stop_event

    async def upload(self, payload, file_name):
        self.payloads.append((payload, file_name))
        if self.stop_after and len(self.payloads) >= self.stop_after:
            self.stop_event.set()
        return UploadReceipt(file_name=file_name, generation=len(self.payloads), fingerprint="f")


def test_run_once_compiles_and_uploads(proto_tree):
    uploader = FakeUploader()
    runner = DistributionRunner(proto_tree, FakeCompiler(), uploader)

    receipt = asyncio.run(runner.run_once())

    assert receipt.generation == 1
    assert uploader.payloads == [(b"descriptor-set", "proto.desc")]


def test_only_on_change_skips_unchanged_sources(proto_tree):
    uploader = FakeUploader()
    runner = DistributionRunner(proto_tree, FakeCompiler(), uploader, only_on_change=True)

    assert asyncio.run(runner.run_once()) is not None
    assert asyncio.run(runner.run_once()) is None
    assert asyncio.run(runner.run_once(force=True)) is not None

    (proto_tree / "extra.proto").write_text('syntax = "proto3";\n')
    assert asyncio.run(runner.run_once()) is not None
    assert len(uploader.payloads) == 3


def test_run_once_without_sources(tmp_path):
    runner = DistributionRunner(tmp_path, ProtocCompiler(), FakeUploader())
    with pytest.raises(CompilationError):
        asyncio.run(runner.run_once())


def test_run_forever_until_stopped(proto_tree):
    async def run():
        stop_event = asyncio.Event()
        uploader = FakeUploader(stop_after=3, stop_event=stop_event)
        runner = DistributionRunner(proto_tree, FakeCompiler(), uploader)
        return await runner.run_forever(stop_event, IntervalTicker(0.01))

    assert asyncio.run(run()) == 3


def test_run_forever_survives_failed_passes(proto_tree):
    async def run():
        stop_event = asyncio.Event()
        compiler = FakeCompiler(failures=2)
        uploader = FakeUploader(stop_after=1, stop_event=stop_event)
        uploads = await DistributionRunner(proto_tree, compiler, uploader).run_forever(
            stop_event, IntervalTicker(0.01)
        )
        return uploads, compiler.calls

    assert asyncio.run(run()) == (1, 3)


def test_ticker_stops_immediately_when_signalled():
    async def run():
        stop_event = asyncio.Event()
        ticker = IntervalTicker(30)
        stop_event.set()
        return await ticker.wait(stop_event)

    assert asyncio.run(run()) is False


def test_ticker_ticks_after_the_interval():
    async def run():
        return await IntervalTicker(0.01).wait(asyncio.Event())

    assert asyncio.run(run()) is True


def test_ticker_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        IntervalTicker(0)


# ── CLI ──


def test_cli_defaults_come_from_settings():
    args = cli.build_parser().parse_args([])
    assert args.loop is False
    assert args.interval == 10.0
    assert args.only_on_change is False
    assert args.func is cli.cmd_upload


def test_cli_flags():
    args = cli.build_parser().parse_args(["--loop", "--interval", "2.5", "--only-on-change", "--log-level", "debug"])
    assert args.loop and args.only_on_change
    assert args.interval == 2.5
    assert args.log_level == "debug"


def test_cli_rejects_non_positive_interval():
    with pytest.raises(SystemExit):
        cli.main(["--interval", "0"])


def test_cli_single_upload_reports_failure(tmp_path):
    assert cli.main(["--source-dir", str(tmp_path)]) == 1
