"""Schema source discovery."""

from pathlib import Path


def resolve_source_root(path: str) -> Path:
    """Absolute source root; relative paths are taken from the working directory."""
    root = Path(path)
    return root if root.is_absolute() else (Path.cwd() / root)


def find_proto_sources(root: Path) -> list[Path]:
    """All `.proto` files under `root`, sorted for stable compiler input."""
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*.proto") if p.is_file())


def source_signature(sources: list[Path]) -> tuple:
    """(path, mtime, size) of every source; changes when any file does."""
    signature = []
    for path in sources:
        try:
            stat = path.stat()
        except FileNotFoundError:
            # Deleted between listing and stat; the next scan will drop it
            continue
        signature.append((str(path), stat.st_mtime_ns, stat.st_size))
    return tuple(signature)
