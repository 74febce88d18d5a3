"""Tests for vsearch_lti.lti.grades (score submission)."""

import pytest

from vsearch_lti.exceptions import GradeServiceError, InvalidScore, UpstreamSubmissionError
from vsearch_lti.lti.grades import ScoreSubmitter
from vsearch_lti.lti.models import LineItem

LINE_ITEM = LineItem(id="https://lms.example.com/lineitems/7", tag="visual-search")


class TestScoreSubmitter:
    def test_forwards_completed_fully_graded_score(self, fake_provider, make_token):
        receipt = ScoreSubmitter(fake_provider).submit(
            make_token(user="user-42"), LINE_ITEM, 9000, 10000
        )

        line_item_id, score = fake_provider.scores[0]
        assert line_item_id == LINE_ITEM.id
        assert score.user_id == "user-42"
        assert score.score_given == 9000
        assert score.score_maximum == 10000
        assert score.activity_progress == "Completed"
        assert score.grading_progress == "FullyGraded"
        assert receipt.line_item_id == LINE_ITEM.id
        assert receipt.body == {"resultUrl": f"{LINE_ITEM.id}/results/user-42"}

    def test_wire_format_is_camel_case(self, fake_provider, make_token):
        ScoreSubmitter(fake_provider).submit(make_token(), LINE_ITEM, 1, 2)
        wire = fake_provider.scores[0][1].to_wire()

        assert wire["userId"] == "user-42"
        assert wire["scoreGiven"] == 1
        assert wire["activityProgress"] == "Completed"
        assert wire["timestamp"].endswith("Z")
        assert wire["scoreMaximum"] == 2

    def test_upstream_failure_carries_message(self, fake_provider, make_token):
        fake_provider.submit_error = GradeServiceError("401 invalid_token")

        with pytest.raises(UpstreamSubmissionError) as exc_info:
            ScoreSubmitter(fake_provider).submit(make_token(), LINE_ITEM, 10, 100)

        assert "401 invalid_token" in exc_info.value.message
        assert fake_provider.call_names().count("submit_score") == 1

    def test_unexpected_failure_is_wrapped(self, fake_provider, make_token):
        fake_provider.submit_error = RuntimeError("boom")

        with pytest.raises(UpstreamSubmissionError, match="boom"):
            ScoreSubmitter(fake_provider).submit(make_token(), LINE_ITEM, 10, 100)

    def test_score_above_maximum_is_rejected_before_network(self, fake_provider, make_token):
        with pytest.raises(InvalidScore):
            ScoreSubmitter(fake_provider).submit(make_token(), LINE_ITEM, 12000, 10000)
        assert fake_provider.calls == []

    def test_line_item_without_id_is_rejected(self, fake_provider, make_token):
        with pytest.raises(UpstreamSubmissionError):
            ScoreSubmitter(fake_provider).submit(make_token(), LineItem(tag="x"), 1, 10)
        assert fake_provider.calls == []
