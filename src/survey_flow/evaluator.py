"""ConditionEvaluator — evaluates skip-rule conditions against prior responses.

Three predicate kinds are supported:

  - **equals**: the referenced response's value equals the condition value
  - **is_empty**: the referenced response's answer set is empty
  - **is_nonempty**: the referenced response's answer set has items

A missing referenced response makes ``equals`` and ``is_nonempty`` false and
``is_empty`` true.
"""

from __future__ import annotations

import logging
from typing import Mapping

from survey_flow.models.response import Response
from survey_flow.models.rule import Condition, normalise_trigger

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """Stateless evaluator for ``Condition`` predicates."""

    def evaluate(self, condition: Condition, responses: Mapping[str, Response]) -> bool:
        """Evaluate ``condition`` against ``responses`` (keyed by question id).

        Args:
            condition: the predicate to evaluate
            responses: current responses of the session, keyed by question id

        Returns:
            True if the condition holds.
        """
        response = responses.get(condition.source)
        op = condition.op

        if op == "equals":
            return self._eval_equals(condition, response)
        elif op == "is_empty":
            return response is None or not response.answer_set
        elif op == "is_nonempty":
            return response is not None and bool(response.answer_set)
        else:
            logger.warning("Unknown condition op: %s", op)
            return False

    def _eval_equals(self, condition: Condition, response: Response | None) -> bool:
        """Compare the scalar answer; a list answer matches only if it is exactly that one item.

        Values are compared in their normalised string form so that a
        numeric rating of ``7`` equals a YAML value of ``"7"``.
        """
        if response is None:
            return False
        expected = normalise_trigger(condition.value)
        actual = response.trigger_value
        if actual is not None:
            return actual == expected
        return response.answer_set == [expected]
