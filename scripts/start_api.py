"""
Launch the Butik API with uvicorn.

    PORT=8080 python scripts/start_api.py

Reload follows DEBUG and the log level follows LOG_LEVEL from settings.
"""
import os
import sys
from pathlib import Path

# Make `butik` importable when run from a checkout without installing
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import uvicorn

from butik.core.config import settings


def _read_port() -> int:
    value = os.environ.get("PORT", "8000")
    try:
        port = int(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid PORT '{value}': {exc}") from exc
    if not 0 < port < 65536:
        raise SystemExit(f"PORT out of range: {port}")
    return port


def main() -> None:
    uvicorn.run(
        "butik.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=_read_port(),
        reload=settings.DEBUG and settings.ENVIRONMENT != "production",
        log_level=settings.LOG_LEVEL.lower(),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
