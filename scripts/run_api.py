#!/usr/bin/env python3
"""
Start the fraud check API server.
"""

import argparse
import sys
from pathlib import Path

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from fraudcheck.core.config import debug_enabled, validate_config


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the fraud check API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    if debug_enabled():
        print(f"Debug mode: API docs at http://{args.host}:{args.port}/docs")

    uvicorn.run("fraudcheck.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
