"""
NourishPlate — Entry Point.

Single entry point: `python main.py` serves the HTTP API with uvicorn.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

import uvicorn

from nourishplate.config import settings


def main() -> None:
    uvicorn.run(
        "nourishplate.api.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
    )


if __name__ == "__main__":
    main()
