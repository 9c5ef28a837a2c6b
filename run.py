#!/usr/bin/env python3
"""
Sovereign System - local launcher

Sets up .venv, installs the package into it and starts the JSON API
(uvicorn), the reconciliation/reminder loop, or both.

Usage:
  python run.py                      # API at http://127.0.0.1:8000/docs
  python run.py --scheduler          # reconciliation + reminder loop only
  python run.py --both               # API + loop
  python run.py --tick               # a single reconciliation/reminder pass
  python run.py --db ./me.sqlite3 --timezone Europe/Berlin
  python run.py --no-install
"""

from __future__ import annotations

import argparse
import os
import platform
import subprocess
import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
VENV_DIR = PROJECT_ROOT / ".venv"
SCHEDULER_INTERVAL_S = 300
RUNNER_MODULE = "sovereign.jobs.schedule_runner"


def venv_python() -> Path:
    if platform.system().lower().startswith("win"):
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def child_env(args: argparse.Namespace) -> dict[str, str]:
    env = dict(os.environ)
    if args.db:
        env["SOVEREIGN_DB_PATH"] = str(Path(args.db).resolve())
    if args.timezone:
        env["SOVEREIGN_TIMEZONE"] = args.timezone
    return env


def call(cmd: list[str], env: dict[str, str] | None = None, check: bool = True) -> int:
    print("\n$ " + " ".join(cmd))
    return subprocess.run(cmd, cwd=str(PROJECT_ROOT), env=env, check=check).returncode


def prepare(install: bool) -> Path:
    if not (PROJECT_ROOT / "pyproject.toml").exists():
        raise FileNotFoundError(f"No pyproject.toml in {PROJECT_ROOT}")

    py = venv_python()
    if not py.exists():
        print(f"Creating virtual environment in {VENV_DIR}")
        call([sys.executable, "-m", "venv", str(VENV_DIR)])
        if not py.exists():
            raise RuntimeError(f"Virtualenv created but no interpreter at {py}")

    if install:
        call([str(py), "-m", "pip", "install", "--upgrade", "pip"])
        call([str(py), "-m", "pip", "install", "-e", str(PROJECT_ROOT)])
    return py


def tick(py: Path, env: dict[str, str]) -> int:
    return call([str(py), "-m", RUNNER_MODULE], env=env, check=False)


def loop(py: Path, env: dict[str, str]) -> int:
    # schedule_runner is idempotent, so a missed or doubled pass is harmless
    while True:
        tick(py, env)
        time.sleep(SCHEDULER_INTERVAL_S)


def spawn_loop(py: Path, args: argparse.Namespace, env: dict[str, str]) -> subprocess.Popen:
    cmd = [str(py), str(Path(__file__).resolve()), "--scheduler", "--no-install"]
    flags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0) if os.name == "nt" else 0
    print("Starting reconciliation loop in the background")
    return subprocess.Popen(cmd, cwd=str(PROJECT_ROOT), env=env, creationflags=flags)


def serve(py: Path, args: argparse.Namespace, env: dict[str, str]) -> int:
    cmd = [str(py), "-m", "uvicorn", "sovereign.main:app", "--host", args.host, "--port", str(args.port)]
    if not args.no_reload:
        cmd.append("--reload")
    shown = "127.0.0.1" if args.host == "0.0.0.0" else args.host
    print(f"\nAPI docs: http://{shown}:{args.port}/docs  (Ctrl+C to stop)\n")
    return call(cmd, env=env, check=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run.py", description="Sovereign System launcher")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--scheduler", action="store_true", help="run only the reconciliation/reminder loop")
    mode.add_argument("--both", action="store_true", help="run the API and the loop")
    mode.add_argument("--tick", action="store_true", help="run one reconciliation/reminder pass and exit")
    parser.add_argument("--db", help="SQLite file to use (sets SOVEREIGN_DB_PATH)")
    parser.add_argument("--timezone", help="IANA zone for day boundaries (sets SOVEREIGN_TIMEZONE)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", action="store_true", help="start uvicorn without --reload")
    parser.add_argument("--no-install", action="store_true", help="skip pip install into .venv")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    py = prepare(install=not args.no_install)
    env = child_env(args)

    if args.tick:
        return tick(py, env)
    if args.scheduler:
        return loop(py, env)

    background = spawn_loop(py, args, env) if args.both else None
    try:
        return serve(py, args, env)
    finally:
        if background is not None and background.poll() is None:
            print("\nStopping reconciliation loop")
            background.terminate()


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nStopped.")
        raise
