"""Helper to run the FastAPI server."""

from __future__ import annotations

import logging

import uvicorn

from ..config import settings


def main() -> None:
    logging.basicConfig(level=settings.log_level)
    uvicorn.run("velocity_guard.api.server:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
