"""Distribution runner — compile the schema tree and push it to the server.

One pass (`run_once`) scans the source root, compiles every `.proto` file
into a single descriptor set and uploads it. `run_forever` repeats that on
every tick of an `IntervalTicker` until the stop event is set; failures
in one pass are logged and retried on the next tick.
"""

import asyncio
from pathlib import Path
from typing import Optional

import httpx
import structlog

from app.distributor.client import DescriptorUploader, ServerUnavailable, UploadReceipt, UploadRejected
from app.distributor.protoc import CompilationError, ProtocCompiler
from app.distributor.sources import find_proto_sources, source_signature

logger = structlog.get_logger()


class IntervalTicker:
    """Tick source for the upload loop."""

    def __init__(self, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds

    async def wait(self, stop_event: asyncio.Event) -> bool:
        """Sleep one interval. Returns False as soon as `stop_event` is set."""
        if stop_event.is_set():
            return False
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return True
        return False


class DistributionRunner:
    def __init__(
        self,
        source_root: Path,
        compiler: ProtocCompiler,
        uploader: DescriptorUploader,
        only_on_change: bool = False,
        file_name: Optional[str] = None,
    ):
        self.source_root = source_root
        self.compiler = compiler
        self.uploader = uploader
        self.only_on_change = only_on_change
        self.file_name = file_name or f"{source_root.name or 'schemas'}.desc"
        self._last_signature: Optional[tuple] = None

    async def run_once(self, force: bool = False) -> Optional[UploadReceipt]:
        """Compile and upload the current sources.

        Returns None when `only_on_change` is on and nothing changed since the
        last successful upload. `force` uploads regardless.
        """
        sources = find_proto_sources(self.source_root)
        signature = source_signature(sources)

        if self.only_on_change and not force and signature == self._last_signature:
            logger.debug("schema_sources_unchanged", files=len(sources))
            return None

        # protoc is a blocking subprocess
        payload = await asyncio.to_thread(self.compiler.compile, sources, self.source_root)
        receipt = await self.uploader.upload(payload, self.file_name)

        self._last_signature = signature
        return receipt

    async def run_forever(self, stop_event: asyncio.Event, ticker: IntervalTicker) -> int:
        """Upload on every tick until `stop_event` is set. Returns completed uploads."""
        uploads = 0
        first = True

        logger.info(
            "distribution_loop_started",
            source_root=str(self.source_root),
            interval_seconds=ticker.interval_seconds,
            only_on_change=self.only_on_change,
        )

        while not stop_event.is_set():
            try:
                receipt = await self.run_once(force=first)
                if receipt is not None:
                    uploads += 1
            except CompilationError as e:
                logger.error("schema_compilation_failed", error=str(e))
            except UploadRejected as e:
                logger.error("descriptor_upload_rejected", status_code=e.status_code, error=str(e), problems=e.problems)
            except (ServerUnavailable, httpx.HTTPError) as e:
                logger.error("descriptor_upload_failed", error=str(e), error_type=type(e).__name__)
            first = False

            if not await ticker.wait(stop_event):
                break

        logger.info("distribution_loop_stopped", uploads=uploads)
        return uploads
