import logging
from pathlib import Path

import uvicorn
from payroll_admin.main import app
from payroll_admin.core.config import ServerConfig

log_level = getattr(logging, ServerConfig.LOG_LEVEL.upper())
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

def ssl_files_available() -> bool:
    missing = [f for f in (ServerConfig.SSL_CERT_FILE, ServerConfig.SSL_KEY_FILE) if not Path(f).exists()]
    for path in missing:
        logger.error(f"SSL file not found: {path}")
    return not missing

if __name__ == "__main__":
    workers = ServerConfig.WORKERS if ServerConfig.WORKERS > 1 else None

    if ServerConfig.USE_HTTPS and ssl_files_available():
        logger.info(f"Starting HTTPS server on port {ServerConfig.PORT}...")
        logger.info(f"API Documentation: https://localhost:{ServerConfig.PORT}/docs")

        uvicorn.run(
            app,
            host=ServerConfig.HOST,
            port=ServerConfig.PORT,
            ssl_keyfile=ServerConfig.SSL_KEY_FILE,
            ssl_certfile=ServerConfig.SSL_CERT_FILE,
            log_level=ServerConfig.LOG_LEVEL.lower(),
            workers=workers
        )
    else:
        if ServerConfig.USE_HTTPS:
            logger.error("Certificates missing, falling back to HTTP")
        logger.info(f"Starting HTTP server on port {ServerConfig.PORT}...")
        logger.info(f"API Documentation: http://localhost:{ServerConfig.PORT}/docs")

        uvicorn.run(
            app,
            host=ServerConfig.HOST,
            port=ServerConfig.PORT,
            log_level=ServerConfig.LOG_LEVEL.lower(),
            workers=workers
        )
