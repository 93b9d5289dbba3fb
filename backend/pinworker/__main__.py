"""Run the worker with uvicorn: ``python -m pinworker``."""

import uvicorn

from pinworker.core.config import settings
from pinworker.core.tracing import shutdown_tracing


def main() -> None:
    try:
        uvicorn.run(
            "pinworker.main:app",
            host="0.0.0.0",
            port=settings.PORT,
            log_config=None,
        )
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    main()
