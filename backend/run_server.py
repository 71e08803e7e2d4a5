#!/usr/bin/env python3
"""
Startup script for the EduSpark LMS API
"""

import logging

import uvicorn

from backend.config import settings
from backend.data.database_setup import init_db

logger = logging.getLogger("backend.run_server")


def main():
    """Main function to run the server"""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Initializing database at %s", settings.DATABASE_PATH)
    applied = init_db()
    logger.info("Database ready (%d migrations applied)", len(applied))

    logger.info("Starting server on http://localhost:8000 (docs at /docs)")
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Enable auto-reload for development
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
