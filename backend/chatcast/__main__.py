"""Run the chatcast server: ``python -m chatcast``."""
import uvicorn

from chatcast.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "chatcast.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level,
    )


if __name__ == "__main__":
    main()
