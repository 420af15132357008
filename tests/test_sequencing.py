"""SequencingController tests with the in-memory store.

Covers session lifecycle, navigation (advance / jump / back), progress
accounting, the submit gate, completion idempotence and error propagation.
"""

import pytest

from helpers.catalogs import build_catalog, jump_to, linear_catalog, question, rule
from survey_db.models.enums import SessionStatus
from survey_flow.constants import METRIC_FINAL_ASSESSMENT, METRIC_FINAL_REPORT, METRIC_REAL_TIME
from survey_flow.errors import (
    InvalidTransitionError,
    QuestionNotFoundError,
    SessionNotFoundError,
    StorageFailureError,
)
from survey_flow.scoring import round_half_up
from survey_flow.sequencing import SequencingController
from survey_flow.store import InMemoryResponseStore


class FailingAnalyticsStore(InMemoryResponseStore):
    """Store whose analytics writes always fail."""

    async def save_analytics(self, session_id, metric_type, data):
        raise StorageFailureError("analytics table unavailable")


class FailingResponseStore(InMemoryResponseStore):
    """Store whose response writes always fail."""

    async def save_response(self, *args, **kwargs):
        raise StorageFailureError("disk full")


def _stakeholder_catalog():
    """q1 resolves the stakeholder type; q2 is for retailers only."""
    return build_catalog(
        [
            question("q1", options=["consumer", "retailer"]),
            question("q2", logic={"stakeholder_types": ["retailer"]}),
            question("q3"),
        ],
        stakeholder_question="q1",
    )


# =====================================================================
# Lifecycle
# =====================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_session_positions_on_first_question(self, controller, memory_store):
        session = await controller.start_session()
        assert session.current_question == "q1"
        assert session.current_section == "screening"
        assert session.catalog_version == "1.0.0"
        assert controller.current_question().id == "q1"
        assert controller.history == ("q1",)
        assert await memory_store.get_session(session.id) is not None

    @pytest.mark.asyncio
    async def test_no_session_is_invalid_transition(self, controller):
        with pytest.raises(InvalidTransitionError):
            controller.current_question()

    @pytest.mark.asyncio
    async def test_initialize_unknown_session(self, controller):
        with pytest.raises(SessionNotFoundError):
            await controller.initialize("missing")

    @pytest.mark.asyncio
    async def test_initialize_restores_responses(self, catalog, memory_store):
        first = SequencingController(catalog, memory_store)
        session = await first.start_session()
        await first.advance("consumer")
        await first.advance("25-34")

        second = SequencingController(catalog, memory_store)
        await second.initialize(session.id)
        assert set(second.responses) == {"q1", "q2"}
        assert second.current_question().id == "q3"
        assert second.session.stakeholder_type == "consumer"
        assert second.progress().answered == 2

    @pytest.mark.asyncio
    async def test_unresolvable_current_question_falls_back_to_first(self, catalog, memory_store):
        stale = await memory_store.create_session(current_question="q_removed")
        controller = SequencingController(catalog, memory_store)
        await controller.initialize(stale.id)
        assert controller.current_question().id == "q1"

    @pytest.mark.asyncio
    async def test_resume_latest(self, catalog, memory_store):
        older = await memory_store.create_session(current_question="q1")
        newer = await memory_store.create_session(current_question="q2")
        controller = SequencingController(catalog, memory_store)
        resumed = await controller.resume_latest()
        assert resumed.id == newer.id
        assert resumed.id != older.id

    @pytest.mark.asyncio
    async def test_resume_latest_without_sessions(self, controller):
        assert await controller.resume_latest() is None


# =====================================================================
# Navigation
# =====================================================================


class TestAdvance:

    @pytest.mark.asyncio
    async def test_advance_stores_response_and_moves(self, controller, memory_store):
        session = await controller.start_session()
        nxt = await controller.advance("consumer")
        assert nxt.id == "q2"

        stored = await memory_store.get_response(session.id, "q1")
        assert stored.trigger_value == "consumer"
        refreshed = await memory_store.get_session(session.id)
        assert refreshed.current_question == "q2"
        assert refreshed.current_section == "screening"
        assert controller.history == ("q1", "q2")

    @pytest.mark.asyncio
    async def test_stakeholder_type_applies_in_same_step(self, memory_store):
        c = _stakeholder_catalog()
        consumer = SequencingController(c, memory_store)
        await consumer.start_session()
        assert (await consumer.advance("consumer")).id == "q3", "q2 is retailer-only"
        assert consumer.session.stakeholder_type == "consumer"

        retailer = SequencingController(c, memory_store)
        await retailer.start_session()
        assert (await retailer.advance("retailer")).id == "q2"

    @pytest.mark.asyncio
    async def test_skip_rule_drives_advance(self, memory_store):
        c = build_catalog(
            [question(f"q{i}") for i in range(1, 6)],
            rules=[rule("q1", "B", jump_to("q5"))],
        )
        controller = SequencingController(c, memory_store)
        await controller.start_session()
        assert (await controller.advance("B")).id == "q5"

    @pytest.mark.asyncio
    async def test_end_of_questionnaire_returns_none(self, memory_store):
        controller = SequencingController(linear_catalog(2), memory_store)
        await controller.start_session()
        await controller.advance("A")
        assert await controller.advance("B") is None
        assert controller.session.current_question == "q2", (
            "Session stays on the last question at the end of the flow"
        )

    @pytest.mark.asyncio
    async def test_advance_explicit_question(self, controller):
        await controller.start_session()
        nxt = await controller.advance("Extremely", question_id="q20")
        assert nxt.id == "q21"
        assert "q20" in controller.responses

    @pytest.mark.asyncio
    async def test_advance_unknown_question(self, controller):
        await controller.start_session()
        with pytest.raises(QuestionNotFoundError):
            await controller.advance("A", question_id="q999")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [True, ["a", "b"], None])
    async def test_advance_rejects_wrong_shape(self, controller, value):
        await controller.start_session()
        with pytest.raises(ValueError):
            await controller.advance(value)

    @pytest.mark.asyncio
    async def test_full_consumer_walkthrough(self, controller):
        await controller.start_session()
        answers = {
            "q1": "consumer",
            "q2": "25-34",
            "q3": "Yes",
            "q8": "Blue ocean adverts with local food and music",
            "q9": {"Television": "Very aware", "Radio": "Slightly aware"},
            "q10": ["Television"],
            "q20": "Significantly",
            "q21": ["Food", "Scenery", "Culture", "Nightlife", "Events"],
            "q31": ["Planning a trip"],
            "q43": ["Booked travel"],
            "q54": 9,
            "q55": "Yes",
            "q87": 8,
            "q88": "More video content",
        }
        visited = ["q1"]
        current = controller.current_question()
        while current is not None:
            current = await controller.advance(answers[current.id])
            if current is not None:
                visited.append(current.id)

        assert visited == list(answers), "Consumer path skips q32, q33 and q44"
        assert controller.can_submit() is True


class TestJumpAndBack:

    @pytest.mark.asyncio
    async def test_navigate_to(self, controller, memory_store):
        session = await controller.start_session()
        q = await controller.navigate_to("q54")
        assert q.id == "q54"
        refreshed = await memory_store.get_session(session.id)
        assert refreshed.current_question == "q54"
        assert refreshed.current_section == "advocacy"

    @pytest.mark.asyncio
    async def test_navigate_to_unknown(self, controller):
        await controller.start_session()
        with pytest.raises(QuestionNotFoundError):
            await controller.navigate_to("q999")

    @pytest.mark.asyncio
    async def test_go_back_skips_ineligible(self, memory_store):
        controller = SequencingController(_stakeholder_catalog(), memory_store)
        await controller.start_session()
        await controller.advance("consumer")
        assert controller.current_question().id == "q3"
        previous = await controller.go_back()
        assert previous.id == "q1", "q2 is excluded for consumers"
        assert controller.session.current_question == "q1"

    @pytest.mark.asyncio
    async def test_go_back_at_start_is_noop(self, controller):
        session = await controller.start_session()
        assert await controller.go_back() is None
        assert controller.session.current_question == session.current_question

    @pytest.mark.asyncio
    async def test_previous_question_does_not_move(self, controller):
        await controller.start_session()
        await controller.advance("consumer")
        assert controller.previous_question().id == "q1"
        assert controller.current_question().id == "q2"


# =====================================================================
# Progress and submit gate
# =====================================================================


class TestProgress:

    @pytest.mark.asyncio
    async def test_two_of_three_required_answered(self, memory_store):
        """3 required questions, q1 and q2 answered: 67% and not submittable."""
        controller = SequencingController(linear_catalog(3, required=True), memory_store)
        await controller.start_session()
        await controller.advance("A")
        await controller.advance("B")

        progress = controller.progress()
        assert progress.percentage == 67
        assert (progress.answered, progress.total) == (2, 3)
        assert controller.can_submit() is False
        assert controller.missing_required() == ["q3"]

        await controller.advance("C")
        assert controller.can_submit() is True

    @pytest.mark.asyncio
    async def test_percentage_formula_and_monotonicity(self, memory_store):
        c = linear_catalog(7)
        controller = SequencingController(c, memory_store)
        await controller.start_session()
        last = 0
        for answered in range(1, 8):
            await controller.advance("A")
            pct = controller.progress().percentage
            assert pct == round_half_up(100 * answered / 7)
            assert 0 <= pct <= 100
            assert pct >= last, "Progress must never decrease"
            last = pct

    @pytest.mark.asyncio
    async def test_percentage_rounds_half_up(self, memory_store):
        controller = SequencingController(linear_catalog(8), memory_store)
        await controller.start_session()
        await controller.advance("A")
        assert controller.progress().percentage == 13, "12.5 rounds up"

    @pytest.mark.asyncio
    async def test_overwriting_does_not_double_count(self, controller):
        await controller.start_session()
        await controller.advance("consumer")
        await controller.advance("retailer", question_id="q1")
        assert controller.progress().answered == 1

    @pytest.mark.asyncio
    async def test_progress_is_cached_on_session(self, controller, memory_store):
        session = await controller.start_session()
        await controller.advance("consumer")
        stored = await memory_store.get_session(session.id)
        assert stored.progress == controller.progress().percentage == 6, "1 of 17 answered"

    @pytest.mark.asyncio
    async def test_section_progress(self, controller):
        await controller.start_session()
        await controller.advance("consumer")
        await controller.advance("25-34")
        by_id = {s.section_id: s for s in controller.section_progress()}
        assert by_id["screening"].answered == 2
        assert by_id["screening"].total == 3
        assert by_id["screening"].percentage == 67
        assert by_id["awareness"].percentage == 0
        assert by_id["screening"].title == "About You"

    @pytest.mark.asyncio
    async def test_can_submit_requires_every_required_question(self, controller):
        await controller.start_session()
        await controller.advance("consumer")
        await controller.advance(9, question_id="q54")
        assert controller.can_submit() is False
        await controller.advance(7, question_id="q87")
        assert controller.can_submit() is True


# =====================================================================
# Completion
# =====================================================================


class TestCompletion:

    @pytest.mark.asyncio
    async def test_complete_marks_session_and_stores_report(self, controller, memory_store):
        session = await controller.start_session()
        await controller.advance("consumer")
        report = await controller.complete()

        stored = await memory_store.get_session(session.id)
        assert stored.completion_status == SessionStatus.COMPLETED
        assert stored.completed_at is not None
        assert report.session_id == session.id
        assert await memory_store.get_analytics(session.id, METRIC_FINAL_REPORT) is not None

    @pytest.mark.asyncio
    async def test_complete_is_idempotent(self, controller, memory_store):
        session = await controller.start_session()
        await controller.advance("consumer")
        first = await controller.complete()
        completed_at = (await memory_store.get_session(session.id)).completed_at

        second = await controller.complete()
        assert second == first, "Second complete() must return the same report"
        assert (await memory_store.get_session(session.id)).completed_at == completed_at

    @pytest.mark.asyncio
    async def test_complete_after_reload_returns_stored_report(self, catalog, memory_store):
        first = SequencingController(catalog, memory_store)
        session = await first.start_session()
        report = await first.complete()

        second = SequencingController(catalog, memory_store)
        await second.initialize(session.id)
        assert await second.complete() == report

    @pytest.mark.asyncio
    async def test_complete_with_numeric_awareness_answer(self, memory_store):
        c = build_catalog(
            [question("q1", question_type="scale", scale_min=0, scale_max=10)],
            report={"awareness": "q1"},
        )
        controller = SequencingController(c, memory_store)
        session = await controller.start_session()
        await controller.advance(7)
        report = await controller.complete()

        assert report.session_id == session.id
        stored = await memory_store.get_session(session.id)
        assert stored.completion_status == SessionStatus.COMPLETED
        record = await memory_store.get_analytics(session.id, METRIC_FINAL_ASSESSMENT)
        assert record.data["awareness"]["unaided_response"] == "7"

    @pytest.mark.asyncio
    async def test_failed_report_leaves_session_in_progress(self, catalog, memory_store):
        controller = SequencingController(catalog, memory_store)
        session = await controller.start_session()

        async def broken(session_id=None):
            raise RuntimeError("report generation failed")

        controller.scoring.generate_final_report = broken
        with pytest.raises(RuntimeError):
            await controller.complete()
        stored = await memory_store.get_session(session.id)
        assert stored.completion_status == SessionStatus.IN_PROGRESS
        assert stored.completed_at is None

    @pytest.mark.asyncio
    async def test_completed_session_rejects_navigation(self, controller):
        await controller.start_session()
        await controller.advance("consumer")
        await controller.complete()

        with pytest.raises(InvalidTransitionError):
            await controller.advance("25-34")
        with pytest.raises(InvalidTransitionError):
            await controller.navigate_to("q54")
        with pytest.raises(InvalidTransitionError):
            await controller.go_back()

    @pytest.mark.asyncio
    async def test_export(self, controller):
        session = await controller.start_session()
        await controller.advance("consumer")
        export = await controller.export()
        assert export.session.id == session.id
        assert [r.question_id for r in export.responses] == ["q1"]
        assert METRIC_REAL_TIME in {a.metric_type for a in export.analytics}


# =====================================================================
# Error propagation
# =====================================================================


class TestErrors:

    @pytest.mark.asyncio
    async def test_storage_failure_on_save_propagates(self, catalog):
        controller = SequencingController(catalog, FailingResponseStore())
        await controller.start_session()
        with pytest.raises(StorageFailureError):
            await controller.advance("consumer")
        assert controller.responses == {}, "Failed save must not be recorded"

    @pytest.mark.asyncio
    async def test_scoring_failure_does_not_block_navigation(self, catalog):
        controller = SequencingController(catalog, FailingAnalyticsStore())
        await controller.start_session()
        nxt = await controller.advance("consumer")
        assert nxt.id == "q2"
        report = await controller.complete()
        assert report.recommendations[0].area == "General", (
            "Without a stored assessment the report falls back to the generic recommendation"
        )
