# run.py
import uvicorn
import logging
import os
import sys

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    try:
        port = int(os.getenv("PORT", 8000))
    except (ValueError, TypeError):
        logger.warning("Invalid PORT environment variable, using default 8000")
        port = 8000

    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting Plates API on {host}:{port}")

    try:
        uvicorn.run(
            "plates.main:app",
            host=host,
            port=port,
            reload=False,
            workers=1,     # Katalog tek yazıcı ile korunur; birden fazla worker kullanma
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
            access_log=True
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)
