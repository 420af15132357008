"""SkipLogicEngine — computes the next eligible question.

Given the current question, the session's responses and its stakeholder
type, :meth:`SkipLogicEngine.next_question` returns the next ``Question`` to
show, or ``None`` at the end of the questionnaire.

Resolution order:

  1. A skip rule keyed by (current id, answer to current id) wins:
       - jump_to(target):        the target, if eligible
       - continue_after(from):   first eligible question after ``from``
       - route_to_range(s, e):   first eligible question in s..e, else
                                 first eligible question after ``e``
  2. Otherwise, the first eligible question after the current one.

Eligibility is :meth:`should_skip`.  A jump target that is itself
ineligible resolves forward from the target.  Every forward resolution is a
bounded scan of the catalog, so no rule set can make it loop.

The engine holds no per-session state: for identical inputs it always
returns the same question.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from survey_flow.catalog import QuestionCatalog
from survey_flow.evaluator import ConditionEvaluator
from survey_flow.models.question import Question
from survey_flow.models.response import Response
from survey_flow.models.rule import ContinueAfter, JumpTo, RouteToRange, SkipRule

logger = logging.getLogger(__name__)

Responses = Mapping[str, Response]


class SkipLogicEngine:
    """Pure next/previous-question resolution over a catalog."""

    def __init__(
        self,
        catalog: QuestionCatalog,
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        self._catalog = catalog
        self._evaluator = evaluator or ConditionEvaluator()

    @property
    def catalog(self) -> QuestionCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def should_skip(
        self,
        question: Question,
        responses: Responses,
        stakeholder_type: Optional[str],
    ) -> bool:
        """True if ``question`` must not be shown.

        A question is skipped when (a) it is restricted to stakeholder types
        that do not include the session's type (an unresolved type never
        matches), or (b) any rule sourced at the question has a condition
        that currently holds.
        """
        allowed = question.stakeholder_types
        if allowed is not None and (stakeholder_type is None or stakeholder_type not in allowed):
            return True

        for rule in self._catalog.rules_from(question.id):
            if rule.condition is not None and self._evaluator.evaluate(rule.condition, responses):
                return True
        return False

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next_question(
        self,
        current_id: str,
        responses: Responses,
        stakeholder_type: Optional[str],
    ) -> Optional[Question]:
        """Resolve the question that follows ``current_id``.

        Raises:
            QuestionNotFoundError: if ``current_id`` is not in the catalog.
        """
        position = self._catalog.index_of(current_id)

        response = responses.get(current_id)
        rule = None
        if response is not None:
            rule = self._catalog.rule_for(current_id, response.trigger_value)

        if rule is None:
            return self._first_eligible(position + 1, responses, stakeholder_type)

        logger.debug(
            "Skip rule %s=%s fired: %s", rule.question_id, rule.trigger_value, rule.action.action
        )
        return self._apply_rule(rule, responses, stakeholder_type)

    def previous_eligible(
        self,
        current_id: str,
        responses: Responses,
        stakeholder_type: Optional[str],
    ) -> Optional[Question]:
        """Walk backward in catalog order to the nearest eligible question.

        Returns None at the start of the catalog.
        """
        position = self._catalog.index_of(current_id)
        for question in reversed(self._catalog.questions[:position]):
            if not self.should_skip(question, responses, stakeholder_type):
                return question
        return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_rule(
        self,
        rule: SkipRule,
        responses: Responses,
        stakeholder_type: Optional[str],
    ) -> Optional[Question]:
        action = rule.action
        catalog = self._catalog

        if isinstance(action, JumpTo):
            return self._first_eligible(catalog.index_of(action.target), responses, stakeholder_type)

        if isinstance(action, ContinueAfter):
            start = catalog.index_of(action.from_question) + 1
            return self._first_eligible(start, responses, stakeholder_type)

        if isinstance(action, RouteToRange):
            start = catalog.index_of(action.start)
            end = catalog.index_of(action.end)
            found = self._first_eligible(start, responses, stakeholder_type, stop=end + 1)
            if found is not None:
                return found
            return self._first_eligible(end + 1, responses, stakeholder_type)

        logger.warning("Unhandled skip action: %s", action)
        return None

    def _first_eligible(
        self,
        start: int,
        responses: Responses,
        stakeholder_type: Optional[str],
        stop: Optional[int] = None,
    ) -> Optional[Question]:
        """First eligible question at positions ``start`` .. ``stop - 1``."""
        questions = self._catalog.questions
        stop = len(questions) if stop is None else min(stop, len(questions))
        for question in questions[start:stop]:
            if not self.should_skip(question, responses, stakeholder_type):
                return question
        return None
