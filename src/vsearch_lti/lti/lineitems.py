"""
Line item resolution.

Finds the gradebook column for the tool's activity on a resource link, or
creates it.  Reuse always wins over creation: if any matching item exists,
the first one the platform lists is used.

The lookup-then-create sequence holds no lock on the platform's gradebook.
Two concurrent resolutions that both see no item will both create one; the
platform's line item list is the only place that converges.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from vsearch_lti.auth import LaunchToken
from vsearch_lti.exceptions import MissingResourceLink

from .models import LineItem
from .provider import LtiAdvantageProvider

# Reaction-time scores run into the thousands of milliseconds.
DEFAULT_SCORE_MAXIMUM = 10000
DEFAULT_TAG = "visual-search"
DEFAULT_LABEL = "Visual Search Game Score"
LEGACY_TAG = "grade"


@dataclass(frozen=True)
class ResolutionPolicy:
    """How a grade endpoint locates its line item."""

    tag: str = DEFAULT_TAG
    label: str = DEFAULT_LABEL
    # Use the line item URL the platform named at launch, when there is one.
    use_launch_lineitem: bool = False
    # Accept ``resource.resourceLink.id`` when ``resource.id`` is missing.
    resource_link_fallback: bool = True
    # Only reuse items carrying ``tag``; otherwise any item on the link.
    filter_by_tag: bool = True


CURRENT_POLICY = ResolutionPolicy()

LEGACY_POLICY = ResolutionPolicy(
    tag=LEGACY_TAG,
    use_launch_lineitem=True,
    resource_link_fallback=False,
    filter_by_tag=False,
)


def resource_link_id_for(token: LaunchToken, fallback: bool = True) -> str:
    resource_link_id = token.resource_link_id if fallback else token.resource_id
    if not resource_link_id:
        raise MissingResourceLink()
    return resource_link_id


class LineItemResolver:
    def __init__(self, provider: LtiAdvantageProvider, logger: Optional[logging.Logger] = None):
        self._provider = provider
        self._log = logger or logging.getLogger(__name__)

    def resolve(
        self,
        token: LaunchToken,
        policy: ResolutionPolicy = CURRENT_POLICY,
        score_maximum: Optional[float] = None,
    ) -> LineItem:
        """Return the line item for *token*'s activity, creating it if needed.

        Raises ``MissingResourceLink`` when the launch names no resource link.
        Grade service failures propagate as ``GradeServiceError``.
        """
        if policy.use_launch_lineitem and token.lineitem:
            self._log.debug("Using launch line item %s", token.lineitem)
            return LineItem(id=token.lineitem)

        resource_link_id = resource_link_id_for(token, policy.resource_link_fallback)
        tag = policy.tag if policy.filter_by_tag else None

        existing = self._provider.get_line_items(token, resource_link_id, tag)
        if existing:
            if len(existing) > 1:
                self._log.warning(
                    "%d line items match resource_link=%s tag=%s; reusing %s",
                    len(existing), resource_link_id, tag, existing[0].id,
                )
            return existing[0]

        self._log.info("Creating line item for resource_link=%s tag=%s", resource_link_id, policy.tag)
        return self._provider.create_line_item(
            token,
            LineItem(
                label=policy.label,
                score_maximum=score_maximum or DEFAULT_SCORE_MAXIMUM,
                resource_link_id=resource_link_id,
                tag=policy.tag,
            ),
        )
