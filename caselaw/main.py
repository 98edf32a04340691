"""Uvicorn entry point for the case-law search API.

Run directly:        python -m caselaw.main
Run via uvicorn:     uvicorn caselaw.main:app --reload
"""

import uvicorn

from caselaw.api.app import create_app
from caselaw.core.config import Settings

app = create_app()


def main() -> None:
    """Start the API server with uvicorn."""
    settings = Settings()
    uvicorn.run(
        "caselaw.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
