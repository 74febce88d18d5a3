"""
LTI 1.3 endpoints.

GET|POST /login   - OIDC-initiated login
POST     /launch  - JWT validation, launch context storage, redirect to game
GET      /keys    - Tool's public key set
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pylti1p3.exception import LtiException

from vsearch_lti.settings import get_settings

from .adapter import LaunchRequest, ToolLaunch, ToolLogin
from .config import get_tool_config, get_tool_jwks
from .provider import PyLti1p3Provider
from .storage import RedisLaunchDataStorage, RedisPlatformStore, redis_client_from_url

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lti"])

RESOURCE_LINK_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/resource_link"
DEPLOYMENT_ID_CLAIM = "https://purl.imsglobal.org/spec/lti/claim/deployment_id"
AGS_ENDPOINT_CLAIM = "https://purl.imsglobal.org/spec/lti-ags/claim/endpoint"

# Singletons (initialized in app lifespan)
_launch_data_storage: RedisLaunchDataStorage | None = None
_platform_store: RedisPlatformStore | None = None
_provider: PyLti1p3Provider | None = None


def init_lti_storage(redis_url: str, launch_ttl: int | None = None) -> None:
    """Called during FastAPI startup."""
    global _launch_data_storage, _platform_store, _provider
    client = redis_client_from_url(redis_url)
    _launch_data_storage = RedisLaunchDataStorage(client, launch_ttl)
    _platform_store = RedisPlatformStore(client)
    _provider = PyLti1p3Provider(_platform_store)
    logger.info("LTI storage initialized (Redis)")


def _require(value, name: str):
    if value is None:
        raise RuntimeError(f"LTI {name} not initialized. Set VSG_REDIS_URL and restart.")
    return value


def get_launch_data_storage() -> RedisLaunchDataStorage:
    return _require(_launch_data_storage, "launch storage")


def get_platform_store() -> RedisPlatformStore:
    return _require(_platform_store, "platform store")


def get_provider() -> PyLti1p3Provider:
    """FastAPI dependency for the LTI Advantage provider."""
    return _require(_provider, "provider")


def _is_secure(request: Request) -> bool:
    """Check if request is HTTPS (direct or behind a proxy)."""
    if request.url.scheme == "https":
        return True
    return request.headers.get("x-forwarded-proto", "") == "https"


async def _launch_request(request: Request) -> LaunchRequest:
    if request.method == "GET":
        params = dict(request.query_params)
    else:
        params = dict(await request.form())
    return LaunchRequest(params=params, cookies=dict(request.cookies), secure=_is_secure(request))


def launch_info(launch_data: dict) -> dict:
    """The subset of an id_token the grade endpoints read back."""
    aud = launch_data.get("aud")
    client_id = aud[0] if isinstance(aud, list) and aud else aud
    return {
        "sub": launch_data.get("sub"),
        "iss": launch_data.get("iss"),
        "client_id": launch_data.get("azp") or client_id or "",
        "deployment_id": launch_data.get(DEPLOYMENT_ID_CLAIM, ""),
        "resource_link": launch_data.get(RESOURCE_LINK_CLAIM, {}),
        "ags": launch_data.get(AGS_ENDPOINT_CLAIM, {}),
    }


@router.api_route("/login", methods=["GET", "POST"])
async def lti_login(request: Request):
    """
    OIDC-initiated login.

    Called by the platform when a learner opens the activity. Validates the
    request and redirects to the platform's auth endpoint.
    """
    launch_request = await _launch_request(request)

    target_link_uri = launch_request.get_param("target_link_uri")
    if not target_link_uri:
        raise HTTPException(status_code=400, detail='Missing "target_link_uri" param')

    login = ToolLogin(
        launch_request,
        get_tool_config(get_platform_store()),
        launch_data_storage=get_launch_data_storage(),
    )
    try:
        response = login.redirect(target_link_uri)
    except LtiException as e:
        logger.warning("OIDC login rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e

    logger.info("OIDC login redirect -> %s", response.headers.get("location", "N/A"))
    return response


@router.post("/launch")
async def lti_launch(request: Request):
    """
    LTI resource link launch.

    Receives the signed id_token, validates it, stores the launch context the
    grade endpoints read, and redirects to the game with the launch id.
    """
    storage = get_launch_data_storage()
    launch_request = await _launch_request(request)

    message_launch = ToolLaunch(
        launch_request,
        get_tool_config(get_platform_store()),
        launch_data_storage=storage,
    )
    try:
        launch_data = message_launch.get_launch_data()
    except LtiException as e:
        logger.warning("LTI launch rejected: %s", e)
        raise HTTPException(status_code=401, detail=str(e)) from e

    launch_id = message_launch.get_launch_id()
    info = launch_info(launch_data)
    storage.set_value(f"launch_info:{launch_id}", info)

    logger.info(
        "LTI launch: sub=%s iss=%s resource_link=%s lineitem=%s launch=%s",
        info["sub"], info["iss"],
        info["resource_link"].get("id"), info["ags"].get("lineitem"),
        launch_id,
    )

    frontend_url = get_settings().frontend_url
    separator = "&" if "?" in frontend_url else "?"
    return RedirectResponse(url=f"{frontend_url}{separator}ltik={launch_id}", status_code=302)


@router.get("/keys")
async def lti_keys():
    """
    Serve the tool's public JSON Web Key Set.

    The platform fetches this to verify JWTs signed by the tool.
    """
    return JSONResponse(content=get_tool_jwks())
