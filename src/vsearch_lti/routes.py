"""
Grade passback endpoints.

POST /api/grade - current contract: ``{score?, grade?, max?}``, tag
                  ``visual-search``, answers ``{"ok": true}``
POST /grade     - legacy contract: ``{grade}``, fixed maximum, tag ``grade``,
                  answers with the platform's raw response body

Both require a launch token (see ``vsearch_lti.auth``).  The two endpoints
keep their historical differences in how the line item is found.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from vsearch_lti.auth import LaunchToken, get_launch_token
from vsearch_lti.exceptions import GradeServiceError
from vsearch_lti.lti.grades import ScoreSubmitter
from vsearch_lti.lti.lineitems import (
    CURRENT_POLICY,
    DEFAULT_SCORE_MAXIMUM,
    LEGACY_POLICY,
    LineItemResolver,
    ResolutionPolicy,
)
from vsearch_lti.lti.models import SubmissionReceipt
from vsearch_lti.lti.provider import LtiAdvantageProvider
from vsearch_lti.lti.routes import get_provider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grades"])

# Score reported when the body carries neither ``score`` nor ``grade``.
DEFAULT_SCORE = 100


# =============================================================================
# Request Models
# =============================================================================


class GradeRequest(BaseModel):
    """Body of ``POST /api/grade``."""

    score: Optional[float] = Field(None, description="Score achieved")
    grade: Optional[float] = Field(None, description="Alias of score")
    max: Optional[float] = Field(None, description="Score maximum (default 10000)")

    def score_given(self) -> float:
        if self.score is not None:
            return self.score
        if self.grade is not None:
            return self.grade
        return DEFAULT_SCORE

    def score_maximum(self) -> float:
        return self.max if self.max is not None else DEFAULT_SCORE_MAXIMUM


class LegacyGradeRequest(BaseModel):
    """Body of ``POST /grade``."""

    grade: float


# =============================================================================
# Dependencies
# =============================================================================


def get_resolver(provider: LtiAdvantageProvider = Depends(get_provider)) -> LineItemResolver:
    return LineItemResolver(provider)


def get_submitter(provider: LtiAdvantageProvider = Depends(get_provider)) -> ScoreSubmitter:
    return ScoreSubmitter(provider)


def pass_back(
    resolver: LineItemResolver,
    submitter: ScoreSubmitter,
    token: LaunchToken,
    policy: ResolutionPolicy,
    score_given: float,
    score_maximum: float,
) -> SubmissionReceipt:
    """Resolve the line item and post the score. Blocking (pylti1p3 is sync)."""
    # Out-of-range scores fail here, before any line item is created.
    submitter.build_score(token, score_given, score_maximum)
    line_item = resolver.resolve(token, policy, score_maximum)
    return submitter.submit(token, line_item, score_given, score_maximum)


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/api/grade")
async def submit_grade(
    token: LaunchToken = Depends(get_launch_token),
    payload: Optional[GradeRequest] = None,
    resolver: LineItemResolver = Depends(get_resolver),
    submitter: ScoreSubmitter = Depends(get_submitter),
):
    payload = payload or GradeRequest()
    score_given = payload.score_given()
    score_maximum = payload.score_maximum()

    logger.info("Submitting grade: score=%s max=%s user=%s", score_given, score_maximum, token.user)

    try:
        await asyncio.to_thread(
            pass_back, resolver, submitter, token, CURRENT_POLICY, score_given, score_maximum
        )
    except GradeServiceError as e:
        logger.error("Grade submission error: %s", e.message)
        return JSONResponse(
            status_code=500,
            content={"error": f"grade passback failed: {e.message}"},
        )

    logger.info("Grade submitted successfully")
    return {"ok": True}


@router.post("/grade")
async def submit_grade_legacy(
    payload: LegacyGradeRequest,
    token: LaunchToken = Depends(get_launch_token),
    resolver: LineItemResolver = Depends(get_resolver),
    submitter: ScoreSubmitter = Depends(get_submitter),
):
    try:
        receipt = await asyncio.to_thread(
            pass_back, resolver, submitter, token, LEGACY_POLICY,
            payload.grade, DEFAULT_SCORE_MAXIMUM,
        )
    except GradeServiceError as e:
        logger.error("Legacy grade endpoint error: %s", e.message)
        return JSONResponse(status_code=500, content={"err": e.message})

    return JSONResponse(content=receipt.body)
