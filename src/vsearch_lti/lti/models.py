"""
AGS and trust-store records.

Field names are snake_case in Python and camelCase on the wire, matching the
IMS media types (``application/vnd.ims.lis.v2.lineitem+json`` and
``application/vnd.ims.lis.v1.score+json``).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for records exchanged with the platform."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class LineItem(WireModel):
    """One gradebook column."""

    id: str | None = Field(None, description="Platform-assigned line item URL")
    label: str | None = None
    score_maximum: float | None = None
    resource_link_id: str | None = None
    tag: str | None = None

    @field_validator("score_maximum")
    @classmethod
    def _positive_maximum(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("scoreMaximum must be positive")
        return value


class Score(WireModel):
    """A score record posted against a line item."""

    user_id: str
    score_given: float
    score_maximum: float
    activity_progress: str = "Completed"
    grading_progress: str = "FullyGraded"
    timestamp: str | None = None

    @model_validator(mode="after")
    def _check_range(self) -> Score:
        if self.score_maximum <= 0:
            raise ValueError("scoreMaximum must be positive")
        if not 0 <= self.score_given <= self.score_maximum:
            raise ValueError(
                f"scoreGiven {self.score_given} outside 0..{self.score_maximum}"
            )
        return self


class SubmissionReceipt(BaseModel):
    """What the platform answered to a score post."""

    line_item_id: str
    body: Any = None


class AuthConfig(BaseModel):
    method: str = "JWK_SET"
    key: str | None = None


class PlatformRegistration(BaseModel):
    """A trusted LMS instance, keyed by ``url`` (its issuer)."""

    url: str
    name: str
    client_id: str
    authentication_endpoint: str | None = None
    access_token_endpoint: str | None = None
    auth_config: AuthConfig = Field(default_factory=AuthConfig)
    deployment_ids: list[str] = Field(default_factory=list)
