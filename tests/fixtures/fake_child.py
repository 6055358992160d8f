#!/usr/bin/env python3
"""Fake child process for supervisor integration tests.

The script ignores stdin EOF, so the only way to end it early is a signal.
It writes key/value lines (TAB separated) to stdout:

    ready<TAB><pid>         once signal handlers are installed
    tick<TAB><n>            every --interval seconds, --count times
    echo<TAB><line>         for every stdin line when --echo is given
    signal<TAB><NAME>       when SIGINT/SIGTERM arrives, then exits 128+signum

Usage:
    python fake_child.py [--count N] [--interval SECONDS] [--echo]
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
import time
from typing import NoReturn


def emit(key: str, value: str) -> None:
    """Emit one key/value line to stdout."""
    sys.stdout.write(f"{key}\t{value}\n")
    sys.stdout.flush()


def signal_handler(signum: int, frame) -> NoReturn:
    """Report the signal and exit like a shell would."""
    emit("signal", signal.Signals(signum).name)
    os._exit(128 + signum)


def echo_stdin() -> None:
    """Echo stdin lines back; EOF is ignored."""
    for line in sys.stdin:
        emit("echo", line.rstrip("\n"))


def main() -> NoReturn:
    parser = argparse.ArgumentParser(description="Fake child for testing")
    parser.add_argument("--count", type=int, default=1000, help="Number of ticks")
    parser.add_argument("--interval", type=float, default=0.05, help="Seconds between ticks")
    parser.add_argument("--echo", action="store_true", help="Echo stdin lines")
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if args.echo:
        threading.Thread(target=echo_stdin, daemon=True).start()

    emit("ready", str(os.getpid()))

    for n in range(args.count):
        time.sleep(args.interval)
        emit("tick", str(n))

    sys.exit(0)


if __name__ == "__main__":
    main()
