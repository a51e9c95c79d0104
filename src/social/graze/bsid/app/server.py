import logging
from time import time
from typing import Optional

from aio_statsd import TelegrafStatsdClient
import aiohttp
from aiohttp import web
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from social.graze.bsid.app.config import (
    SessionAppKey,
    Settings,
    SettingsAppKey,
    TelegrafStatsdClientAppKey,
)
from social.graze.bsid.app.handlers.internal import handle_internal_alive
from social.graze.bsid.app.handlers.profiles import (
    handle_lookup_app_bucket,
    handle_lookup_profile,
    handle_lookup_profiles,
    handle_verify_profile_token,
)

logger = logging.getLogger(__name__)


async def client_session(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    trace_config = aiohttp.TraceConfig()

    if settings.debug:

        async def on_request_start(
            session, trace_config_ctx, params: aiohttp.TraceRequestStartParams
        ):
            logging.info("Starting request: %s", params)

        async def on_request_end(session, trace_config_ctx, params):
            logging.info("Ending request: %s", params)

        trace_config.on_request_start.append(on_request_start)
        trace_config.on_request_end.append(on_request_end)

    app[SessionAppKey] = aiohttp.ClientSession(trace_configs=[trace_config])

    statsd_client = TelegrafStatsdClient(
        host=settings.statsd_host, port=settings.statsd_port, debug=settings.debug
    )
    await statsd_client.connect()
    app[TelegrafStatsdClientAppKey] = statsd_client

    logger.info("Startup complete")

    yield

    logger.info("Shutting down")

    await app[SessionAppKey].close()
    await app[TelegrafStatsdClientAppKey].close()


def route_path(request: web.Request) -> str:
    """The route template of a request, so usernames do not become metric tags."""
    resource = request.match_info.route.resource
    if resource is None:
        return "unmatched"
    return resource.canonical


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    statsd_client = request.app[TelegrafStatsdClientAppKey]
    request_method: str = request.method
    request_path = route_path(request)

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise
    except Exception as e:
        statsd_client.increment(
            "bsid.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        statsd_client.timer(
            "bsid.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        statsd_client.increment(
            "bsid.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        response = await handler(request)
        return response
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        raise e


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=True,
            integrations=[AioHttpIntegration()],
        )
    app = web.Application(middlewares=[statsd_middleware, sentry_middleware])

    app[SettingsAppKey] = settings

    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
        ]
    )

    app.add_routes(
        [
            web.get("/v1/profiles", handle_lookup_profiles),
            web.post("/v1/profiles/verify", handle_verify_profile_token),
            web.get("/v1/profiles/{username}", handle_lookup_profile),
            web.get("/v1/profiles/{username}/bucket", handle_lookup_app_bucket),
        ]
    )

    app.cleanup_ctx.append(client_session)

    return app
