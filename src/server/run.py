"""CLI entry point for launching the FastAPI app with uvicorn."""

import uvicorn

from src.history_service.config import Config
from src.history_service.logger import setup_logger


def main() -> None:
    """Run the history server."""
    config = Config.from_yaml()
    setup_logger(log_level=config.log_level, log_file=config.log_file)
    uvicorn.run(
        "src.server.app:create_app",
        host=config.server.host,
        port=config.server.port,
        factory=True,
    )


if __name__ == "__main__":
    main()
