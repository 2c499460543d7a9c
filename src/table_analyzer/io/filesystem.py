from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Protocol

from table_analyzer.core.errors import NotFound, ReadFailed, WriteFailed

logger = logging.getLogger(__name__)


class FileSystemProvider(Protocol):
    """Supplies raw source text and accepts rendered artifact bytes."""

    def read(self, name: str) -> str:
        ...

    def write(self, name: str, payload: bytes) -> None:
        ...


class LocalFileSystem:
    """Read sources and write artifacts relative to a root directory."""

    def __init__(self, root: Path | None = None, encoding: str = "utf-8") -> None:
        self.root = root or Path.cwd()
        self.encoding = encoding

    def _resolve(self, name: str) -> Path:
        path = Path(name)
        return path if path.is_absolute() else self.root / path

    @contextmanager
    def open_reader(self, name: str) -> Iterator[IO[str]]:
        path = self._resolve(name)
        if not path.is_file():
            raise NotFound(str(path))
        handle = path.open("r", encoding=self.encoding, newline="")
        try:
            yield handle
        finally:
            handle.close()

    def read(self, name: str) -> str:
        try:
            with self.open_reader(name) as handle:
                text = handle.read()
        except NotFound:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadFailed(str(self._resolve(name)), str(exc)) from exc
        logger.debug("Read %d characters from %s", len(text), name)
        return text

    def write(self, name: str, payload: bytes) -> None:
        path = self._resolve(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as handle:
                handle.write(payload)
        except OSError as exc:
            raise WriteFailed(str(path), str(exc)) from exc
        logger.info("Wrote %d bytes to %s", len(payload), path)


class InMemoryFileSystem:
    """Dictionary-backed provider, one instance per pipeline invocation."""

    def __init__(self, sources: dict[str, str] | None = None) -> None:
        self.sources: dict[str, str] = dict(sources or {})
        self.artifacts: dict[str, bytes] = {}

    def read(self, name: str) -> str:
        try:
            return self.sources[name]
        except KeyError:
            raise NotFound(name) from None

    def write(self, name: str, payload: bytes) -> None:
        if not name:
            raise WriteFailed(name, "Artifact name is empty.")
        self.artifacts[name] = bytes(payload)
