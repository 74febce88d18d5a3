"""
PyLTI1p3 glue for Starlette.

pylti1p3 is framework-agnostic; it needs a request wrapper, a cookie
service, a redirect type and thin ``OIDCLogin`` / ``MessageLaunch``
subclasses that know how to produce Starlette responses.
"""

from __future__ import annotations

from pylti1p3.cookie import CookieService
from pylti1p3.launch_data_storage.base import LaunchDataStorage
from pylti1p3.message_launch import MessageLaunch
from pylti1p3.oidc_login import OIDCLogin
from pylti1p3.redirect import Redirect
from pylti1p3.request import Request
from pylti1p3.session import SessionService
from starlette.responses import HTMLResponse, RedirectResponse, Response


class LaunchRequest(Request):
    """Snapshot of an incoming Starlette request (params, cookies, scheme)."""

    def __init__(self, params: dict, cookies: dict, secure: bool):
        super().__init__()
        self._params = params
        self._cookies = cookies
        self._secure = secure
        self._session: dict = {}

    @property
    def session(self) -> dict:
        return self._session

    def get_param(self, key: str) -> str | None:
        return self._params.get(key)

    def get_cookie(self, key: str) -> str | None:
        return self._cookies.get(key)

    def is_secure(self) -> bool:
        return self._secure


class LaunchCookies(CookieService):
    """Buffers cookies pylti1p3 sets until a response exists to carry them."""

    def __init__(self, request: LaunchRequest):
        self._request = request
        self._pending: dict[str, tuple[str, int]] = {}

    def _name(self, key: str) -> str:
        return f"{self._cookie_prefix}-{key}"

    def get_cookie(self, name: str) -> str | None:
        return self._request.get_cookie(self._name(name))

    def set_cookie(self, name: str, value: str | int, exp: int = 3600):
        self._pending[self._name(name)] = (str(value), exp)

    def apply(self, response: Response) -> Response:
        secure = self._request.is_secure()
        for name, (value, exp) in self._pending.items():
            # iframe launches need SameSite=None, which browsers only allow over https
            response.set_cookie(
                key=name,
                value=value,
                max_age=exp,
                path="/",
                secure=secure,
                httponly=True,
                samesite="none" if secure else "lax",
            )
        return response


class LaunchRedirect(Redirect):
    def __init__(self, location: str, cookies: LaunchCookies | None = None):
        super().__init__()
        self._location = location
        self._cookies = cookies

    def _finish(self, response: Response) -> Response:
        return self._cookies.apply(response) if self._cookies else response

    def do_redirect(self) -> Response:
        return self._finish(RedirectResponse(url=self._location, status_code=302))

    def do_js_redirect(self) -> Response:
        # Some browsers drop cookies set on a 302 inside an iframe.
        html = (
            "<html><head></head><body>"
            f'<script type="text/javascript">window.location="{self._location}";</script>'
            "</body></html>"
        )
        return self._finish(HTMLResponse(content=html))

    def set_redirect_url(self, location: str):
        self._location = location

    def get_redirect_url(self) -> str:
        return self._location


class ToolLogin(OIDCLogin):
    """OIDC login initiation."""

    def __init__(
        self,
        request: LaunchRequest,
        tool_config,
        launch_data_storage: LaunchDataStorage | None = None,
    ):
        super().__init__(
            request,
            tool_config,
            SessionService(request),
            LaunchCookies(request),
            launch_data_storage,
        )

    def get_redirect(self, url: str) -> LaunchRedirect:
        return LaunchRedirect(url, self._cookie_service)

    def get_response(self, html: str) -> HTMLResponse:
        return HTMLResponse(content=html)


class ToolLaunch(MessageLaunch):
    """id_token validation and launch data access."""

    def __init__(
        self,
        request: LaunchRequest,
        tool_config,
        launch_data_storage: LaunchDataStorage | None = None,
        requests_session=None,
    ):
        super().__init__(
            request,
            tool_config,
            SessionService(request),
            LaunchCookies(request),
            launch_data_storage,
            requests_session,
        )

    def _get_request_param(self, key: str) -> str | None:
        return self._request.get_param(key)
