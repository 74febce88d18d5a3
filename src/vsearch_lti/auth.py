"""
Launch context gate for grade endpoints.

Resolves the launch token from the ``X-LTI-Launch-Id`` header (or the
``ltik`` query parameter the launch redirect appends) by looking up the
launch context stored in Redis during the LTI launch.  There is no dev
fallback: a request without a live launch is rejected with 401.

Usage::

    from vsearch_lti.auth import LaunchToken, get_launch_token

    @router.post("/example")
    async def example(token: LaunchToken = Depends(get_launch_token)):
        print(token.user, token.resource_link_id)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi import Request

from vsearch_lti.exceptions import Unauthenticated

LAUNCH_HEADER = "x-lti-launch-id"
LAUNCH_QUERY_PARAM = "ltik"


@dataclass(frozen=True)
class LaunchToken:
    """Validated identity of one LTI launch. Read-only, request-scoped."""

    launch_id: str
    user: str
    issuer: str = ""
    client_id: str = ""
    deployment_id: str = ""
    resource: dict[str, Any] = field(default_factory=dict)
    endpoint: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_launch_info(cls, launch_id: str, info: dict[str, Any]) -> LaunchToken:
        return cls(
            launch_id=launch_id,
            user=info.get("sub", ""),
            issuer=info.get("iss", ""),
            client_id=info.get("client_id", ""),
            deployment_id=info.get("deployment_id", ""),
            resource=info.get("resource_link") or {},
            endpoint=info.get("ags") or {},
        )

    @property
    def resource_id(self) -> str | None:
        return self.resource.get("id") or None

    @property
    def resource_link_id(self) -> str | None:
        """Resource-link id, falling back to the nested ``resourceLink.id``."""
        nested = self.resource.get("resourceLink") or {}
        return self.resource_id or nested.get("id") or None

    @property
    def lineitem(self) -> str | None:
        """Line item URL the platform named at launch time, if any."""
        return self.endpoint.get("lineitem") or None


def authorize(request: Request) -> LaunchToken:
    """Return the launch token attached to *request* or raise ``Unauthenticated``."""
    launch_id = request.headers.get(LAUNCH_HEADER) or request.query_params.get(LAUNCH_QUERY_PARAM)
    if not launch_id:
        raise Unauthenticated()

    try:
        from vsearch_lti.lti.routes import get_launch_data_storage

        storage = get_launch_data_storage()
    except RuntimeError:
        # LTI storage not initialized
        raise Unauthenticated() from None

    info = storage.get_value(f"launch_info:{launch_id}")
    if not info or not isinstance(info, dict) or not info.get("sub"):
        raise Unauthenticated()

    return LaunchToken.from_launch_info(launch_id, info)


async def get_launch_token(request: Request) -> LaunchToken:
    """FastAPI dependency wrapping :func:`authorize`."""
    return authorize(request)
