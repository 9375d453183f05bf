import logging

import uvicorn

from server import app

logger = logging.getLogger(__name__)


def main():
    config = app.state.config
    logger.info(f"Server starting on {config.listen_host}:{config.port}")
    uvicorn.run(
        app,
        host=config.listen_host,
        port=config.port,
        timeout_keep_alive=config.keep_alive_timeout,
        # Logging is already configured by config.logging_config
        log_config=None,
    )


if __name__ == "__main__":
    main()
