import json
import logging
from logging.config import dictConfig

from aiohttp import web

from social.graze.bsid.app.config import Settings


def configure_logging(settings: Settings) -> None:
    if settings.logging_config_file:
        with open(settings.logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def invoke():
    settings = Settings()  # type: ignore
    configure_logging(settings)

    from social.graze.bsid.app.server import start_web_server

    web.run_app(start_web_server(settings), port=settings.http_port)


if __name__ == "__main__":
    invoke()
