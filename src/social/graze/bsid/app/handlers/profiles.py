import asyncio
import logging
from typing import Any, Dict

from aiohttp import web

from social.graze.bsid.app.config import (
    SessionAppKey,
    SettingsAppKey,
    TelegrafStatsdClientAppKey,
)
from social.graze.bsid.errors import ProfileLookupErrorKind, ProfileLookupException
from social.graze.bsid.resolve.profile import (
    ProfileLookupResult,
    lookup_app_bucket_url,
    lookup_profile,
)
from social.graze.bsid.token.profile import verify_profile_token

logger = logging.getLogger(__name__)

ERROR_STATUS: Dict[ProfileLookupErrorKind, int] = {
    ProfileLookupErrorKind.request_error: 502,
    ProfileLookupErrorKind.invalid_response: 404,
    ProfileLookupErrorKind.configuration_error: 500,
}


def lookup_error_response(error: ProfileLookupException) -> web.Response:
    body: Dict[str, Any] = {"error": error.kind.value, "message": str(error)}
    if error.reason is not None:
        body["reason"] = error.reason
    return web.json_response(body, status=ERROR_STATUS[error.kind])


def count_lookup(request: web.Request, result: ProfileLookupResult) -> None:
    outcome = "ok" if result.error is None else result.error.kind.value
    request.app[TelegrafStatsdClientAppKey].increment(
        "bsid.profile.lookup", 1, tag_dict={"outcome": outcome}
    )


async def handle_lookup_profile(request: web.Request):
    username = request.match_info["username"]
    settings = request.app[SettingsAppKey]

    result = await lookup_profile(
        request.app[SessionAppKey],
        username,
        settings.name_lookup_url,
        settings.address_version,
    )
    count_lookup(request, result)
    if result.error is not None:
        logger.info(
            "Profile lookup for %s failed: %s", username, result.error.reason
        )
        return lookup_error_response(result.error)
    return web.json_response(result.profile)


async def handle_lookup_profiles(request: web.Request):
    usernames = request.query.getall("username", [])
    if len(usernames) == 0:
        return web.json_response([])

    settings = request.app[SettingsAppKey]
    session = request.app[SessionAppKey]

    async with asyncio.TaskGroup() as tg:
        tasks = [
            tg.create_task(
                lookup_profile(
                    session, username, settings.name_lookup_url, settings.address_version
                )
            )
            for username in usernames
        ]

    results = []
    for username, task in zip(usernames, tasks):
        result = task.result()
        count_lookup(request, result)
        if result.error is not None:
            continue
        results.append({"username": username, "profile": result.profile})
    return web.json_response(results)


async def handle_lookup_app_bucket(request: web.Request):
    username = request.match_info["username"]
    settings = request.app[SettingsAppKey]
    app_origin = request.query.get("app", settings.app_origin)

    try:
        bucket_url = await lookup_app_bucket_url(
            request.app[SessionAppKey],
            username,
            app_origin,
            settings.name_lookup_url,
            settings.address_version,
        )
    except ProfileLookupException as e:
        return lookup_error_response(e)

    if bucket_url is None:
        return web.json_response(
            {"error": "not_found", "message": f"No bucket for {app_origin}"},
            status=404,
        )
    return web.json_response({"app": app_origin, "bucket_url": bucket_url})


async def handle_verify_profile_token(request: web.Request):
    try:
        body = await request.json()
    except ValueError:
        return web.json_response(
            {"error": "bad_request", "message": "Body is not JSON"}, status=400
        )

    token = body.get("token") if isinstance(body, dict) else None
    identity = body.get("identity") if isinstance(body, dict) else None
    if not isinstance(token, str) or not isinstance(identity, str):
        return web.json_response(
            {"error": "bad_request", "message": "token and identity are required"},
            status=400,
        )

    settings = request.app[SettingsAppKey]
    decoded = verify_profile_token(token, identity, settings.address_version)
    request.app[TelegrafStatsdClientAppKey].increment(
        "bsid.profile.verify",
        1,
        tag_dict={"outcome": "rejected" if decoded is None else "ok"},
    )
    if decoded is None:
        return web.json_response({"error": "verification_failed"}, status=401)
    return web.json_response({"header": decoded.header, "payload": decoded.payload})
