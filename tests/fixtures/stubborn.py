#!/usr/bin/env python3
"""Stubborn process for termination tests.

Ignores SIGINT (and SIGTERM with --ignore-term), prints "ready" once the
handlers are installed, then sleeps.

Usage:
    python stubborn.py [--ignore-term] [--duration SECONDS]
"""

from __future__ import annotations

import argparse
import signal
import sys
import time


def main() -> None:
    parser = argparse.ArgumentParser(description="Process that ignores SIGINT")
    parser.add_argument("--ignore-term", action="store_true", help="Also ignore SIGTERM")
    parser.add_argument("--duration", type=float, default=30.0, help="Seconds to sleep")
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal.SIG_IGN)
    if args.ignore_term:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    print("ready", flush=True)
    time.sleep(args.duration)
    sys.exit(0)


if __name__ == "__main__":
    main()
