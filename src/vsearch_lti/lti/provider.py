"""
LTI Advantage provider.

The core (line item resolution, score submission, platform bootstrap) talks
to the platform only through :class:`LtiAdvantageProvider`.
:class:`PyLti1p3Provider` implements it with pylti1p3's ``ServiceConnector``
for AGS calls and the Redis trust store for platform records.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from pydantic import ValidationError
from pylti1p3.exception import LtiException
from pylti1p3.grade import Grade
from pylti1p3.service_connector import ServiceConnector
from pylti1p3.tool_config import ToolConfDict

from vsearch_lti.auth import LaunchToken
from vsearch_lti.exceptions import GradeServiceError

from .config import get_tool_config
from .models import LineItem, PlatformRegistration, Score
from .storage import RedisPlatformStore

logger = logging.getLogger(__name__)

LINEITEM_MEDIA_TYPE = "application/vnd.ims.lis.v2.lineitem+json"
LINEITEM_CONTAINER_MEDIA_TYPE = "application/vnd.ims.lis.v2.lineitemcontainer+json"
SCORE_MEDIA_TYPE = "application/vnd.ims.lis.v1.score+json"


class LtiAdvantageProvider(Protocol):
    """Grade service and trust store operations the core depends on."""

    def get_line_items(
        self, token: LaunchToken, resource_link_id: str, tag: Optional[str] = None
    ) -> list[LineItem]: ...

    def create_line_item(self, token: LaunchToken, line_item: LineItem) -> LineItem: ...

    def submit_score(self, token: LaunchToken, line_item_id: str, score: Score) -> Any: ...

    def get_platform(self, url: str) -> Optional[PlatformRegistration]: ...

    def register_platform(self, registration: PlatformRegistration) -> PlatformRegistration: ...


def _with_query(url: str, **params: Optional[str]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v)
    return urlunsplit(parts._replace(query=urlencode(query)))


def _scores_url(line_item_id: str) -> str:
    parts = urlsplit(line_item_id)
    return urlunsplit(parts._replace(path=parts.path.rstrip("/") + "/scores"))


def _next_page(response: dict) -> Optional[str]:
    # pylti1p3 lowercases next_page_url; the raw Link header keeps its case.
    headers = response.get("headers") or {}
    link = headers.get("Link") or headers.get("link")
    if not link:
        return response.get("next_page_url") or None
    for entry in requests.utils.parse_header_links(link):
        if entry.get("rel") == "next":
            return entry.get("url")
    return None


def _line_item(raw: Any) -> LineItem:
    try:
        return LineItem.model_validate(raw)
    except ValidationError as e:
        raise GradeServiceError(f"platform returned an invalid line item: {e.errors()[0]['msg']}") from e


class PyLti1p3Provider:
    """AGS over pylti1p3, platform records in Redis."""

    def __init__(
        self,
        store: RedisPlatformStore,
        tool_config_factory: Callable[[RedisPlatformStore], ToolConfDict] = get_tool_config,
        requests_session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._tool_config_factory = tool_config_factory
        self._requests_session = requests_session
        self._log = logger or logging.getLogger(__name__)

    # ── Grade service ────────────────────────────────────────────────

    def _connector(self, token: LaunchToken) -> ServiceConnector:
        tool_conf = self._tool_config_factory(self._store)
        if token.client_id:
            registration = tool_conf.find_registration_by_params(token.issuer, token.client_id)
        else:
            registration = tool_conf.find_registration_by_issuer(token.issuer)
        if registration is None:
            raise GradeServiceError(f"platform {token.issuer!r} is not registered")
        return ServiceConnector(registration, requests_session=self._requests_session)

    def _request(self, token: LaunchToken, url: str, **kwargs: Any) -> dict:
        scopes = token.endpoint.get("scope") or []
        try:
            return self._connector(token).make_service_request(scopes, url, **kwargs)
        except (LtiException, requests.RequestException, ValueError) as e:
            raise GradeServiceError(str(e)) from e

    def _lineitems_url(self, token: LaunchToken) -> str:
        url = token.endpoint.get("lineitems")
        if not url:
            raise GradeServiceError("launch carries no AGS line items endpoint")
        return url

    def get_line_items(
        self, token: LaunchToken, resource_link_id: str, tag: Optional[str] = None
    ) -> list[LineItem]:
        """List line items for a resource link, optionally narrowed to *tag*.

        The filters go out as query parameters and are applied again locally,
        since platforms are free to ignore them.
        """
        url: Optional[str] = _with_query(
            self._lineitems_url(token), resource_link_id=resource_link_id, tag=tag
        )
        items: list[LineItem] = []
        while url:
            response = self._request(token, url, accept=LINEITEM_CONTAINER_MEDIA_TYPE)
            items.extend(_line_item(raw) for raw in response.get("body") or [])
            url = _next_page(response)

        return [
            item
            for item in items
            if item.resource_link_id == resource_link_id and (tag is None or item.tag == tag)
        ]

    def create_line_item(self, token: LaunchToken, line_item: LineItem) -> LineItem:
        response = self._request(
            token,
            self._lineitems_url(token),
            is_post=True,
            data=json.dumps(line_item.to_wire()),
            content_type=LINEITEM_MEDIA_TYPE,
            accept=LINEITEM_MEDIA_TYPE,
        )
        created = _line_item(response.get("body") or {})
        self._log.info("Created line item %s (tag=%s)", created.id, created.tag)
        return created

    def submit_score(self, token: LaunchToken, line_item_id: str, score: Score) -> Any:
        grade = Grade()
        grade.set_user_id(score.user_id)
        grade.set_score_given(score.score_given)
        grade.set_score_maximum(score.score_maximum)
        grade.set_activity_progress(score.activity_progress)
        grade.set_grading_progress(score.grading_progress)
        if score.timestamp:
            grade.set_timestamp(score.timestamp)

        response = self._request(
            token,
            _scores_url(line_item_id),
            is_post=True,
            data=grade.get_value(),
            content_type=SCORE_MEDIA_TYPE,
        )
        return response.get("body")

    # ── Trust store ──────────────────────────────────────────────────

    def get_platform(self, url: str) -> Optional[PlatformRegistration]:
        return self._store.get_platform(url)

    def register_platform(self, registration: PlatformRegistration) -> PlatformRegistration:
        return self._store.register_platform(registration)
