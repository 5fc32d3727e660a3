#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from collections.abc import Iterator
from pathlib import Path

from application.services import IngestionService
from domain.models import ParseErrorPolicy, Strictness
from infrastructure.logging import configure_logging
from infrastructure.settings import settings


def read_chunks(path: Path, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            yield chunk


def main() -> int:
    parser = argparse.ArgumentParser(description="Stream a local log file into the search index")
    parser.add_argument("--input", type=Path, required=True)
    parser.add_argument("--format", choices=["clf", "jsonl"], default=settings.log_format)
    parser.add_argument(
        "--strictness",
        choices=[item.value for item in Strictness],
        default=settings.strictness.value,
        help="applies to submissions only; parse errors follow --on-parse-error",
    )
    parser.add_argument(
        "--on-parse-error",
        choices=[item.value for item in ParseErrorPolicy],
        default=settings.parse_error_policy.value,
        help="skip (default) drops unparseable lines, abort fails the run on the first one",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)
    run_settings = settings.model_copy(
        update={
            "strictness": Strictness(args.strictness),
            "parse_error_policy": ParseErrorPolicy(args.on_parse_error),
        }
    )
    service = IngestionService(run_settings)
    latch = service.ingest(read_chunks(args.input, settings.read_chunk_size), fmt=args.format)
    summary = latch.summary
    print(summary.model_dump_json(indent=2))
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
