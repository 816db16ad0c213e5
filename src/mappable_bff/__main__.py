# src/mappable_bff/__main__.py

import uvicorn

from .config import settings
from .log_setup import configure_logging


def run() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "mappable_bff.main:app",
        host=settings.HOST,
        port=settings.PORT,
        proxy_headers=settings.is_production,
        log_config=None,
    )


if __name__ == "__main__":
    run()
