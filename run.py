#!/usr/bin/env python3
"""Start the docgraph panel API.

Usage: python3 run.py [--host HOST] [--port PORT] [--reload]
"""

import argparse
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
BACKEND_DIR = ROOT / "backend"


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the docgraph panel API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8100)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    return parser.parse_args(argv)


def main() -> int:
    args = parse_args(sys.argv[1:])
    cmd = [
        sys.executable, "-m", "uvicorn", "docgraph.main:app",
        "--host", args.host,
        "--port", str(args.port),
    ]
    if args.reload:
        cmd.append("--reload")

    print(f"Starting docgraph on http://{args.host}:{args.port}\n")
    try:
        return subprocess.run(cmd, cwd=str(BACKEND_DIR)).returncode
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
