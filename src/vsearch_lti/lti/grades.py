"""
AGS score submission.

Posts a completed, fully graded score for the launching user against a
resolved line item.  Failures are reported, never retried here.
"""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from pydantic import ValidationError

from vsearch_lti.auth import LaunchToken
from vsearch_lti.exceptions import InvalidScore, UpstreamSubmissionError

from .models import LineItem, Score, SubmissionReceipt
from .provider import LtiAdvantageProvider

ACTIVITY_COMPLETED = "Completed"
GRADING_FULLY_GRADED = "FullyGraded"


def _utc_timestamp() -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScoreSubmitter:
    def __init__(self, provider: LtiAdvantageProvider, logger: Optional[logging.Logger] = None):
        self._provider = provider
        self._log = logger or logging.getLogger(__name__)

    def build_score(self, token: LaunchToken, score_given: float, score_maximum: float) -> Score:
        try:
            return Score(
                user_id=token.user,
                score_given=score_given,
                score_maximum=score_maximum,
                activity_progress=ACTIVITY_COMPLETED,
                grading_progress=GRADING_FULLY_GRADED,
                timestamp=_utc_timestamp(),
            )
        except ValidationError as e:
            raise InvalidScore(e.errors()[0]["msg"]) from e

    def submit(
        self,
        token: LaunchToken,
        line_item: LineItem,
        score_given: float,
        score_maximum: float,
    ) -> SubmissionReceipt:
        """
        Send a score to the LMS via AGS.

        Raises InvalidScore for an out-of-range score and
        UpstreamSubmissionError carrying the platform's message.
        """
        if not line_item.id:
            raise UpstreamSubmissionError("line item has no id to post scores against")

        score = self.build_score(token, score_given, score_maximum)

        try:
            body = self._provider.submit_score(token, line_item.id, score)
        except Exception as e:
            self._log.error("AGS score submission failed for line item %s: %s", line_item.id, e)
            raise UpstreamSubmissionError(str(e)) from e

        self._log.info(
            "Grade sent: %s/%s for sub=%s launch=%s",
            score_given, score_maximum, token.user, token.launch_id,
        )
        return SubmissionReceipt(line_item_id=line_item.id, body=body)
