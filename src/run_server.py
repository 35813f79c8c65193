import logging

import uvicorn

from libraryapi import create_app, load_settings


def main():
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info("serving on port %d", settings.port)
    uvicorn.run(
        create_app(settings), host="0.0.0.0", port=settings.port, log_config=None
    )


if __name__ == "__main__":
    main()
