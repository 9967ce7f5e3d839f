"""Tests for FeedbackRepository."""

import pytest

from datacore.repositories import FEEDBACK_SCHEMA


@pytest.fixture
def add_feedback(feedback_repository):
    def _add(risk_id: int, **overrides) -> int:
        data = {"risk_id": risk_id, "content": "Needs a fallback region", "type": "comment", "created_by": "qa"}
        data.update(overrides)
        return feedback_repository.create(data)

    return _add


class TestFeedbackRepository:
    def test_schema_has_no_soft_delete(self):
        assert FEEDBACK_SCHEMA.soft_delete is False
        assert FEEDBACK_SCHEMA.has_created_at

    def test_status_defaults_to_pending(self, feedback_repository, add_feedback, created_risk):
        feedback_id = add_feedback(created_risk["id"])

        assert feedback_repository.find_by_id(feedback_id)["status"] == "pending"

    def test_find_by_risk_id_oldest_first(self, feedback_repository, add_feedback, create_risk, fixed_clock):
        risk = create_risk()
        other = create_risk()
        first = add_feedback(risk["id"], content="first")
        fixed_clock.advance(minutes=10)
        second = add_feedback(risk["id"], content="second")
        add_feedback(other["id"], content="elsewhere")

        rows = feedback_repository.find_by_risk_id(risk["id"])

        assert [r["id"] for r in rows] == [first, second]

    def test_find_by_status_newest_first(self, feedback_repository, add_feedback, created_risk, fixed_clock):
        older = add_feedback(created_risk["id"], status="approved")
        fixed_clock.advance(minutes=1)
        newer = add_feedback(created_risk["id"], status="approved")
        add_feedback(created_risk["id"], status="rejected")

        rows = feedback_repository.find_by_status("approved", columns=["id", "status"])

        assert rows == [{"id": newer, "status": "approved"}, {"id": older, "status": "approved"}]

    def test_feedback_is_removed_with_its_risk(self, feedback_repository, risk_repository, add_feedback,
                                               created_risk):
        add_feedback(created_risk["id"])

        risk_repository.delete(created_risk["id"])

        assert feedback_repository.count() == 0
