#!/usr/bin/env python3
"""
Production startup script.

1. Runs migrations + seed (release.py) unless SKIP_RELEASE=1
2. Starts gunicorn (replaces this process via os.execvp)

Usage:
    python scripts/start.py

os.execvp replaces this process with gunicorn so it receives signals as PID 1.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        print(f"ERROR: Invalid {name} value '{raw}'. Must be an integer.", flush=True)
        sys.exit(1)
    if value < low or value > high:
        print(f"ERROR: {name}={value} out of range {low}-{high}.", flush=True)
        sys.exit(1)
    return value


def gunicorn_argv(port: int, workers: int, threads: int) -> list[str]:
    # Document stores live in worker memory; each worker keeps its own per-user snapshot.
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--threads", str(threads),
        "--timeout", "60",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _int_env("PORT", 8080, low=1, high=65535)
    workers = _int_env("WEB_CONCURRENCY", 2, low=1, high=64)
    threads = _int_env("GUNICORN_THREADS", 4, low=1, high=64)
    print(f"PORT={port} workers={workers} threads={threads}", flush=True)

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        print("=== Running release phase ===", flush=True)
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    print("=== Starting gunicorn ===", flush=True)
    argv = gunicorn_argv(port, workers, threads)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
