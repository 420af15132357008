"""SkipLogicEngine tests — rule dispatch, eligibility filtering and determinism.

Catalog fixtures are built in memory so each test controls the exact
question order and rule set it exercises.
"""

import pytest

from helpers.catalogs import (
    build_catalog,
    continue_after,
    jump_to,
    linear_catalog,
    question,
    responses_of,
    route_to_range,
    rule,
)
from survey_flow.errors import QuestionNotFoundError
from survey_flow.skip_logic import SkipLogicEngine


def _ids(question):
    return question.id if question is not None else None


# =====================================================================
# Default ordering
# =====================================================================


class TestCatalogOrder:

    def test_next_in_declaration_order(self):
        c = linear_catalog(3)
        engine = SkipLogicEngine(c)
        assert _ids(engine.next_question("q1", {}, None)) == "q2"
        assert _ids(engine.next_question("q2", {}, None)) == "q3"

    def test_end_of_catalog_returns_none(self):
        c = linear_catalog(3)
        engine = SkipLogicEngine(c)
        assert engine.next_question("q3", {}, None) is None

    def test_unknown_current_question_raises(self):
        engine = SkipLogicEngine(linear_catalog(2))
        with pytest.raises(QuestionNotFoundError):
            engine.next_question("q99", {}, None)

    def test_answer_without_rule_follows_order(self):
        c = build_catalog(
            [question("q1"), question("q2"), question("q3")],
            rules=[rule("q1", "B", jump_to("q3"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "A"})
        assert _ids(engine.next_question("q1", responses, None)) == "q2"


# =====================================================================
# Rule actions
# =====================================================================


class TestRuleActions:

    def test_jump_to_bypasses_intermediate_questions(self):
        """(q1, "B") -> jump_to(q5) goes straight to q5."""
        c = build_catalog(
            [question(f"q{i}") for i in range(1, 6)],
            rules=[rule("q1", "B", jump_to("q5"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "B"})
        assert _ids(engine.next_question("q1", responses, None)) == "q5"

    def test_jump_to_ineligible_target_resolves_forward(self):
        c = build_catalog(
            [
                question("q1"),
                question("q2"),
                question("q3", logic={"stakeholder_types": ["retailer"]}),
                question("q4"),
            ],
            rules=[rule("q1", "B", jump_to("q3"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "B"})
        assert _ids(engine.next_question("q1", responses, "consumer")) == "q4", (
            "Excluded jump target should resolve to the next eligible question"
        )
        assert _ids(engine.next_question("q1", responses, "retailer")) == "q3"

    def test_continue_after(self):
        c = build_catalog(
            [question(f"q{i}") for i in range(1, 6)],
            rules=[rule("q1", "C", continue_after("q3"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "C"})
        assert _ids(engine.next_question("q1", responses, None)) == "q4"

    def test_continue_after_skips_ineligible(self):
        c = build_catalog(
            [
                question("q1"),
                question("q2"),
                question("q3", logic={"stakeholder_types": ["government"]}),
                question("q4"),
            ],
            rules=[rule("q1", "C", continue_after("q2"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "C"})
        assert _ids(engine.next_question("q1", responses, None)) == "q4"

    def test_route_to_range_first_eligible(self):
        c = build_catalog(
            [
                question("q1"),
                question("q2"),
                question("q3", logic={"stakeholder_types": ["retailer"]}),
                question("q4"),
                question("q5"),
            ],
            rules=[rule("q1", "A", route_to_range("q3", "q4"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "A"})
        assert _ids(engine.next_question("q1", responses, "consumer")) == "q4"
        assert _ids(engine.next_question("q1", responses, "retailer")) == "q3"

    def test_route_to_range_none_eligible_falls_through_after_end(self):
        restricted = {"stakeholder_types": ["retailer"]}
        c = build_catalog(
            [
                question("q1"),
                question("q2", logic=restricted),
                question("q3", logic=restricted),
                question("q4", logic=restricted),
                question("q5"),
            ],
            rules=[rule("q1", "A", route_to_range("q2", "q3"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "A"})
        assert _ids(engine.next_question("q1", responses, "consumer")) == "q5", (
            "Fallback after the range must also skip ineligible questions"
        )

    def test_route_to_range_at_end_of_catalog(self):
        restricted = {"stakeholder_types": ["retailer"]}
        c = build_catalog(
            [question("q1"), question("q2", logic=restricted), question("q3", logic=restricted)],
            rules=[rule("q1", "A", route_to_range("q2", "q3"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "A"})
        assert engine.next_question("q1", responses, None) is None

    def test_backward_jump_is_a_single_step(self):
        """A rule jumping backwards cannot make one call loop."""
        c = build_catalog(
            [question("q1"), question("q2")],
            rules=[rule("q2", "A", jump_to("q1")), rule("q1", "A", jump_to("q2"))],
        )
        engine = SkipLogicEngine(c)
        responses = responses_of(c, {"q1": "A", "q2": "A"})
        assert _ids(engine.next_question("q2", responses, None)) == "q1"
        assert _ids(engine.next_question("q1", responses, None)) == "q2"

    def test_numeric_answer_fires_rule(self):
        c = build_catalog(
            [question("q1", question_type="scale"), question("q2"), question("q3")],
            rules=[rule("q1", 10, jump_to("q3"))],
        )
        engine = SkipLogicEngine(c)
        assert _ids(engine.next_question("q1", responses_of(c, {"q1": 10}), None)) == "q3"
        assert _ids(engine.next_question("q1", responses_of(c, {"q1": 9}), None)) == "q2"


# =====================================================================
# Eligibility
# =====================================================================


class TestShouldSkip:

    @pytest.fixture
    def restricted(self):
        return build_catalog([
            question("q1"),
            question("q9", logic={"stakeholder_types": ["retailer"]}),
        ])

    @pytest.mark.parametrize("answers", [{}, {"q1": "A"}, {"q1": "B", "q9": "C"}])
    def test_excluded_stakeholder_always_skipped(self, restricted, answers):
        """q9 restricted to retailers is skipped for a consumer whatever was answered."""
        engine = SkipLogicEngine(restricted)
        q9 = restricted.get("q9")
        responses = responses_of(restricted, answers)
        assert engine.should_skip(q9, responses, "consumer") is True

    def test_unknown_stakeholder_is_excluded(self, restricted):
        engine = SkipLogicEngine(restricted)
        assert engine.should_skip(restricted.get("q9"), {}, None) is True

    def test_matching_stakeholder_is_eligible(self, restricted):
        engine = SkipLogicEngine(restricted)
        assert engine.should_skip(restricted.get("q9"), {}, "retailer") is False

    def test_unrestricted_question_is_eligible(self, restricted):
        engine = SkipLogicEngine(restricted)
        assert engine.should_skip(restricted.get("q1"), {}, None) is False

    def test_satisfied_condition_on_own_rule_skips_question(self):
        c = build_catalog(
            [
                question("q1", question_type="multiple_select"),
                question("q2", question_type="free_text"),
                question("q3"),
            ],
            rules=[
                rule("q2", "none", continue_after("q2"), condition={"from": "q1", "op": "is_nonempty"}),
            ],
        )
        engine = SkipLogicEngine(c)
        q2 = c.get("q2")
        assert engine.should_skip(q2, responses_of(c, {"q1": ["A"]}), None) is True
        assert engine.should_skip(q2, responses_of(c, {"q1": []}), None) is False
        assert engine.should_skip(q2, {}, None) is False

        picked = responses_of(c, {"q1": ["A"]})
        assert _ids(engine.next_question("q1", picked, None)) == "q3"


# =====================================================================
# Backward navigation
# =====================================================================


class TestPreviousEligible:

    def test_walks_back_over_ineligible(self):
        c = build_catalog([
            question("q1"),
            question("q2", logic={"stakeholder_types": ["retailer"]}),
            question("q3"),
        ])
        engine = SkipLogicEngine(c)
        assert _ids(engine.previous_eligible("q3", {}, "consumer")) == "q1"
        assert _ids(engine.previous_eligible("q3", {}, "retailer")) == "q2"

    def test_start_of_catalog_returns_none(self):
        engine = SkipLogicEngine(linear_catalog(3))
        assert engine.previous_eligible("q1", {}, None) is None


# =====================================================================
# Determinism
# =====================================================================


class TestDeterminism:

    @pytest.mark.parametrize("current, answers, stakeholder", [
        ("q1", {"q1": "consumer"}, "consumer"),
        ("q1", {"q1": "government"}, "government"),
        ("q3", {"q1": "retailer", "q3": "No"}, "retailer"),
        ("q20", {"q20": "Not at all"}, None),
        ("q43", {"q43": ["Booked travel"]}, "consumer"),
    ])
    def test_repeated_calls_are_identical(self, catalog, current, answers, stakeholder):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, answers)
        first = engine.next_question(current, responses, stakeholder)
        for _ in range(5):
            assert engine.next_question(current, responses, stakeholder) == first
        assert set(responses) == set(answers), "Engine must not mutate responses"


# =====================================================================
# Default questionnaire routes
# =====================================================================


class TestDefaultRoutes:

    def test_government_routes_to_policy_block(self, catalog):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, {"q1": "government"})
        assert _ids(engine.next_question("q1", responses, "government")) == "q33"

    def test_not_seen_campaign_skips_recall(self, catalog):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, {"q1": "consumer", "q3": "No"})
        assert _ids(engine.next_question("q3", responses, "consumer")) == "q20"

    def test_no_interest_skips_ranking(self, catalog):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, {"q20": "Not at all"})
        assert _ids(engine.next_question("q20", responses, "consumer")) == "q31"

    def test_consumer_skips_trade_and_policy_questions(self, catalog):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, {"q31": ["Planning a trip"]})
        assert _ids(engine.next_question("q31", responses, "consumer")) == "q43"

    def test_action_taken_skips_barrier_question(self, catalog):
        engine = SkipLogicEngine(catalog)
        responses = responses_of(catalog, {"q43": ["Booked travel"]})
        assert _ids(engine.next_question("q43", responses, "consumer")) == "q54"
        no_action = responses_of(catalog, {"q43": []})
        assert _ids(engine.next_question("q43", no_action, "consumer")) == "q44"
