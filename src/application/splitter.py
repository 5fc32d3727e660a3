from __future__ import annotations

from collections.abc import Iterable, Iterator

from domain.errors import StreamError


def split_lines(chunks: Iterable[bytes], *, keep_empty: bool = False) -> Iterator[str]:
    """Lazily split a byte stream into text lines.

    Lines end at ``\\n``; a ``\\r`` right before it belongs to the terminator.
    Only the unterminated tail of the last chunk is held between reads, and it
    is emitted as a final line once the source is exhausted.
    """
    pending = b""
    for chunk in _guarded(chunks):
        if not chunk:
            continue
        buffer = pending + chunk
        parts = buffer.split(b"\n")
        pending = parts.pop()
        for part in parts:
            line = _decode(part)
            if line or keep_empty:
                yield line
    if pending:
        line = _decode(pending)
        if line or keep_empty:
            yield line


def split_records(chunks: Iterable[bytes]) -> Iterator[str]:
    """Treat every chunk as one whole unit of text, newlines included.

    Used for stream records, where each record carries exactly one document.
    A single trailing line terminator is removed.
    """
    for chunk in _guarded(chunks):
        if chunk.endswith(b"\n"):
            chunk = chunk[:-1]
        yield _decode(chunk)


def _guarded(chunks: Iterable[bytes]) -> Iterator[bytes]:
    try:
        iterator = iter(chunks)
    except TypeError as exc:
        raise StreamError(f"Source is not iterable: {exc}") from exc
    while True:
        try:
            chunk = next(iterator)
        except StopIteration:
            return
        except StreamError:
            raise
        except Exception as exc:
            raise StreamError(f"Failed reading source: {exc}") from exc
        yield chunk


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")
