"""Small CLI helpers wired to console scripts for developer convenience.

Usage (from project root):
  runserver --host=0.0.0.0 --port=8000 --no-reload
  run-tests
  migrate                       # defaults to `alembic upgrade head`
  init-env                      # copies .env.example -> .env if missing
  security-report --range=week  # prints security metrics as JSON
"""
from __future__ import annotations

import sys
import shutil
import subprocess
from pathlib import Path
from typing import List


def _args() -> List[str]:
    return sys.argv[1:]


def _option(name: str, default: str) -> str:
    prefix = f"--{name}="
    for a in _args():
        if a.startswith(prefix):
            return a.split("=", 1)[1]
    return default


def runserver() -> None:
    """Run Uvicorn programmatically. Accepts simple flags:

    --host=<host>  (default 127.0.0.1)
    --port=<port>  (default 8000)
    --no-reload    (disable auto-reload)
    """
    import uvicorn

    host = _option("host", "127.0.0.1")
    port_value = _option("port", "8000")
    if not port_value.isdigit():
        sys.exit(f"Invalid --port value: {port_value}")
    reload = "--no-reload" not in _args()

    print(f"Starting uvicorn on {host}:{port_value} (reload={reload})")
    uvicorn.run("app.main:app", host=host, port=int(port_value), reload=reload)


def run_tests() -> None:
    """Run pytest with any forwarded args."""
    cmd = ["pytest"] + _args()
    subprocess.run(cmd, check=True)


def run_migrations() -> None:
    """Run alembic. If no args provided, runs `alembic upgrade head`."""
    args = _args()
    cmd = ["alembic"] + (args or ["upgrade", "head"])
    subprocess.run(cmd, check=True)


def init_env() -> None:
    """Copy `.env.example` to `.env` if `.env` is missing."""
    root = Path(__file__).resolve().parents[1]
    src = root / ".env.example"
    dst = root / ".env"
    if dst.exists():
        print(f".env already exists at {dst}")
        return
    if not src.exists():
        print(f".env.example not found at {src}")
        return
    shutil.copy(src, dst)
    print(f"Created .env from .env.example at {dst}")


def security_report() -> None:
    """Print security event metrics for --range=hour|day|week|month (default day)."""
    from app.core.database import SessionLocal
    from app.services.security_monitor import SecurityMonitor, TIME_RANGES

    time_range = _option("range", "day")
    if time_range not in TIME_RANGES:
        sys.exit(f"Invalid --range value: {time_range}")

    db = SessionLocal()
    try:
        metrics = SecurityMonitor.get_security_metrics(db, time_range)
    finally:
        db.close()
    print(metrics.model_dump_json(indent=2))


if __name__ == "__main__":
    # Allow running the helpers directly: python -m app.cli runserver
    if len(sys.argv) <= 1:
        print(__doc__)
        sys.exit(0)
    cmd = sys.argv[1]
    sys.argv.pop(1)
    if cmd == "runserver":
        runserver()
    elif cmd in ("run-tests", "tests", "test"):
        run_tests()
    elif cmd in ("migrate", "alembic"):
        run_migrations()
    elif cmd in ("init-env", "initenv"):
        init_env()
    elif cmd in ("security-report", "report"):
        security_report()
    else:
        print(f"Unknown command: {cmd}")
