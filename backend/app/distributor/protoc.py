"""protoc driver — compiles schema sources into one FileDescriptorSet."""

import subprocess
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger()


class CompilationError(Exception):
    """protoc is missing, timed out, or rejected the sources."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        detail = self.stderr.strip()
        return f"{self.args[0]}: {detail}" if detail else self.args[0]


class ProtocCompiler:
    """Runs `protoc --descriptor_set_out` over a set of sources."""

    def __init__(self, protoc_path: str = "protoc", timeout_seconds: float = 60.0):
        self.protoc_path = protoc_path
        self.timeout_seconds = timeout_seconds

    def command(self, sources: list[Path], include_root: Path, output: Path) -> list[str]:
        return [
            self.protoc_path,
            f"--proto_path={include_root}",
            "--include_imports",
            f"--descriptor_set_out={output}",
            *(str(p.relative_to(include_root)) for p in sources),
        ]

    def compile(self, sources: list[Path], include_root: Path) -> bytes:
        """Compile all `sources` into a single serialized FileDescriptorSet.

        Args:
            sources: `.proto` files, all located under `include_root`
            include_root: Import root passed as `--proto_path`

        Raises:
            CompilationError: no sources, protoc missing, timeout or non-zero exit
        """
        if not sources:
            raise CompilationError(f"No .proto files found under {include_root}")

        with tempfile.TemporaryDirectory(prefix="descriptors-") as tmp:
            output = Path(tmp) / "descriptor_set.pb"
            cmd = self.command(sources, include_root, output)
            logger.debug("protoc_invoked", sources=len(sources), include_root=str(include_root))

            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_seconds)
            except FileNotFoundError:
                raise CompilationError(f"protoc not found at '{self.protoc_path}'")
            except subprocess.TimeoutExpired:
                raise CompilationError(f"protoc timed out after {self.timeout_seconds}s")

            if proc.returncode != 0:
                raise CompilationError(f"protoc exited with status {proc.returncode}", stderr=proc.stderr)

            payload = self._read_output(output)

        logger.info("protoc_compiled", sources=len(sources), bytes=len(payload))
        return payload

    def _read_output(self, output: Path) -> bytes:
        try:
            return output.read_bytes()
        except FileNotFoundError:
            raise CompilationError("protoc succeeded but wrote no descriptor set")

