"""Local deterministic worker for CLI backend integration tests."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Echo the instruction and exit according to ``MODULE_ANALYZER_ECHO_*`` env vars.

    ``MODULE_ANALYZER_ECHO_FAIL`` is a comma-separated list of substrings; an
    instruction containing one of them exits 3. ``MODULE_ANALYZER_ECHO_SLEEP``
    delays the exit. ``--output`` names a file that receives the instruction,
    which lets the worker stand in for the document converter.
    """

    parser = argparse.ArgumentParser()
    parser.add_argument("instruction", nargs="+")
    parser.add_argument("--output", default=None)
    args = parser.parse_args(argv)
    instruction = " ".join(args.instruction)

    print(f"echo_worker: {instruction}", flush=True)
    print(f"item: {os.getenv('MODULE_ANALYZER_ITEM', '')}", flush=True)

    sleep_seconds = float(os.getenv("MODULE_ANALYZER_ECHO_SLEEP", "0") or 0)
    if sleep_seconds > 0:
        time.sleep(sleep_seconds)

    failing = [
        token.strip()
        for token in os.getenv("MODULE_ANALYZER_ECHO_FAIL", "").split(",")
        if token.strip()
    ]
    if any(token in instruction for token in failing):
        print("echo_worker: simulated failure", file=sys.stderr, flush=True)
        return 3

    if args.output:
        target = Path(args.output)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(instruction, "utf-8")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
