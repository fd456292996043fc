import logging

import uvicorn

from .app import app
from .config import settings


logger = logging.getLogger(__name__)


if __name__ == "__main__":
    try:
        uvicorn.run(app, host=settings.backend_host, port=settings.backend_port)
    except OSError as exc:
        if "address already in use" in str(exc).lower():
            logger.error("Port %s is already in use. Stop the old process or set BACKEND_PORT.", settings.backend_port)
        raise
