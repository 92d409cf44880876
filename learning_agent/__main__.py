import uvicorn

from learning_agent.config import settings
from learning_agent.logging_utils import configure_logging


def main() -> None:
    configure_logging(settings.log_level.upper())
    uvicorn.run("learning_agent.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
