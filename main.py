"""
Postgate main entry
Caching, resilient proxy for a posts/comments API
"""

import sys

import uvicorn
from loguru import logger

from postgate.api.app import create_app
from postgate.settings import global_settings


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


configure_logging(global_settings.log_level)

app = create_app(global_settings)


if __name__ == "__main__":
    logger.info(
        f"Starting Postgate on {global_settings.host}:{global_settings.port}, "
        f"upstream {global_settings.upstream_base_url}"
    )
    uvicorn.run(
        app,
        host=global_settings.host,
        port=global_settings.port,
        log_level=global_settings.log_level.lower(),
    )
