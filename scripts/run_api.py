#!/usr/bin/env python3
"""
Serve the vault API with uvicorn.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from legacy_vault.core.config import DEBUG, LOG_LEVEL


def main():
    parser = argparse.ArgumentParser(description="Run the Legacy Vault API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    uvicorn.run(
        "legacy_vault.api.main:app",
        host=args.host,
        port=args.port,
        log_level=LOG_LEVEL.lower(),
        reload=DEBUG,
    )


if __name__ == "__main__":
    main()
