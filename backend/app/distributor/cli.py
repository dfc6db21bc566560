import argparse
import asyncio
import signal
from typing import Optional

import httpx
import structlog

from app.config import get_settings
from app.distributor.client import DescriptorUploader, ServerUnavailable, UploadRejected
from app.distributor.protoc import CompilationError, ProtocCompiler
from app.distributor.runner import DistributionRunner, IntervalTicker
from app.distributor.sources import resolve_source_root
from app.logging_conf import configure_logging

logger = structlog.get_logger()


def build_runner(args: argparse.Namespace) -> DistributionRunner:
    settings = get_settings()
    return DistributionRunner(
        source_root=resolve_source_root(args.source_dir),
        compiler=ProtocCompiler(args.protoc),
        uploader=DescriptorUploader(
            args.server_url,
            timeout_seconds=settings.UPLOAD_TIMEOUT_SECONDS,
            max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
        ),
        only_on_change=args.only_on_change,
    )


async def _run_once(runner: DistributionRunner) -> int:
    try:
        receipt = await runner.run_once(force=True)
    except CompilationError as e:
        logger.error("schema_compilation_failed", error=str(e))
        return 1
    except UploadRejected as e:
        logger.error("descriptor_upload_rejected", status_code=e.status_code, error=str(e), problems=e.problems)
        return 1
    except (ServerUnavailable, httpx.HTTPError) as e:
        logger.error("descriptor_upload_failed", error=str(e), error_type=type(e).__name__)
        return 1
    print(receipt.model_dump_json())
    return 0


async def _run_loop(runner: DistributionRunner, interval: float) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Platforms without loop signal support fall back to KeyboardInterrupt
            pass
    await runner.run_forever(stop_event, IntervalTicker(interval))
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    configure_logging(get_settings(), log_level=args.log_level)
    runner = build_runner(args)
    if args.loop:
        return asyncio.run(_run_loop(runner, args.interval))
    return asyncio.run(_run_once(runner))


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    p = argparse.ArgumentParser(
        prog="python -m app.distributor",
        description="Compile .proto sources and upload the descriptor set to the validation service",
    )
    p.add_argument("--source-dir", default=settings.PROTO_SCHEMA_INPUT_DIR, help="Root of the .proto tree")
    p.add_argument("--server-url", default=settings.DESCRIPTOR_SERVER_URL)
    p.add_argument("--protoc", default=settings.PROTOC_PATH, help="protoc executable")
    p.add_argument("--loop", action="store_true", default=settings.UPLOAD_LOOP_ENABLED, help="Re-upload on an interval")
    p.add_argument("--interval", type=float, default=settings.UPLOAD_INTERVAL_SECONDS, help="Seconds between uploads")
    p.add_argument(
        "--only-on-change",
        action="store_true",
        default=settings.UPLOAD_ONLY_ON_CHANGE,
        help="In loop mode, skip uploads when no source changed",
    )
    p.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    p.set_defaults(func=cmd_upload)
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.interval <= 0:
        parser.error("--interval must be positive")
    return int(args.func(args) or 0)
