"""Streaming file transfers with progress display and integrity checks.

A ``TransferSession`` observes every chunk moving through an upload or a
download. It feeds a running hash and an optional progress bar, and on
completion verifies size and digest against the expected values. The
verification step runs at most once per session, whatever mix of end and
error events the caller reports.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import sys
from typing import IO, Any, Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from imgapi_cli.errors import ChecksumError, SizeMismatchError

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class TransferProgress:
    """Progress bar on a terminal stream, silent everywhere else."""

    def __init__(
        self,
        description: str,
        *,
        total: int | None = None,
        stream: IO[str] | None = None,
        enabled: bool = True,
    ) -> None:
        self._stream = stream if stream is not None else sys.stderr
        self._progress = None
        self._task_id = None
        isatty = getattr(self._stream, "isatty", None)
        if not enabled or not callable(isatty) or not isatty():
            return

        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=Console(file=self._stream),
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task(description, total=total)

    @property
    def active(self) -> bool:
        return self._progress is not None

    def advance(self, amount: int) -> None:
        if self._progress is not None:
            self._progress.update(self._task_id, advance=amount)

    def stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None


class TransferSession:
    def __init__(
        self,
        algorithm: str,
        *,
        expected_digest: str | None = None,
        expected_size: int | None = None,
        digest_encoding: str = "hex",
        progress: TransferProgress | None = None,
    ) -> None:
        if digest_encoding not in ("hex", "base64"):
            raise ValueError(f"unsupported digest encoding: {digest_encoding}")
        self.algorithm = algorithm
        self.expected_digest = expected_digest
        self.expected_size = expected_size
        self.digest_encoding = digest_encoding
        self.progress = progress
        self.size = 0
        self.finished = False
        self._hash = hashlib.new(algorithm)

    @property
    def digest(self) -> str:
        if self.digest_encoding == "base64":
            return base64.b64encode(self._hash.digest()).decode("ascii")
        return self._hash.hexdigest()

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)
        self.size += len(chunk)
        if self.progress is not None:
            self.progress.advance(len(chunk))

    def finish(
        self,
        *,
        error: BaseException | None = None,
        expected_digest: str | None = None,
        expected_size: int | None = None,
    ) -> bool:
        """Finalize the transfer. Returns ``False`` if it was already finished.

        With no ``error`` the transferred size and digest are checked against
        the expected values given here or at construction.
        """
        if self.finished:
            return False
        self.finished = True
        if self.progress is not None:
            self.progress.stop()
        if error is not None:
            log.debug("%s transfer aborted after %d bytes: %s", self.algorithm, self.size, error)
            return True

        size = expected_size if expected_size is not None else self.expected_size
        if size is not None and size != self.size:
            raise SizeMismatchError(size, self.size)
        digest = expected_digest if expected_digest is not None else self.expected_digest
        if digest is not None and digest != self.digest:
            raise ChecksumError(self.algorithm, digest, self.digest)
        log.debug("%s transfer ok: %d bytes, %s", self.algorithm, self.size, self.digest)
        return True


class UploadStream:
    """Iterable request body that reports each chunk to a session."""

    def __init__(
        self,
        source: IO[bytes],
        session: TransferSession,
        *,
        size: int | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._source = source
        self._session = session
        self._size = size
        self._chunk_size = chunk_size

    def __len__(self) -> int:
        # requests sends Content-Length from this; 0 means chunked encoding.
        return self._size or 0

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self._source.read(self._chunk_size)
                if not chunk:
                    break
                self._session.update(chunk)
                yield chunk
        except Exception as exc:
            self._session.finish(error=exc)
            raise


def download_to(response: Any, sink: IO[bytes], session: TransferSession) -> None:
    """Copy a streaming response into ``sink`` and verify it."""
    try:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            sink.write(chunk)
            session.update(chunk)
    except Exception as exc:
        session.finish(error=exc)
        raise
    finally:
        response.close()
    session.finish()


def download_session(response: Any, *, progress: TransferProgress | None = None) -> TransferSession:
    """Session that checks a download against its Content-MD5/Content-Length."""
    headers = response.headers
    length = headers.get("Content-Length")
    return TransferSession(
        "md5",
        expected_digest=headers.get("Content-MD5"),
        expected_size=int(length) if length and length.isdigit() else None,
        digest_encoding="base64",
        progress=progress,
    )
