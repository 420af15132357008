"""SequencingController — drives one survey session through the catalog.

The controller wraps :class:`SkipLogicEngine` with live session state:
the current question, the responses given so far and the traversal
history.  Every state change is written through the ``ResponseStore``
before the next step runs; answered responses are forwarded to the
``ScoringEngine``.

Typical flow::

    controller = SequencingController(catalog, store)
    await controller.start_session()

    question = controller.current_question()
    while question is not None:
        question = await controller.advance(answer_for(question))

    if controller.can_submit():
        report = await controller.complete()

Navigation on a completed session raises ``InvalidTransitionError``;
``complete()`` itself is idempotent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from survey_db.models.enums import SessionStatus
from survey_flow.catalog import QuestionCatalog
from survey_flow.constants import METRIC_FINAL_REPORT
from survey_flow.errors import InvalidTransitionError, SessionNotFoundError
from survey_flow.models.question import Question
from survey_flow.models.report import FinalReport
from survey_flow.models.response import Response, build_payload
from survey_flow.models.session import Progress, SectionProgress, Session, SessionExport
from survey_flow.scoring import ScoringEngine, round_half_up
from survey_flow.skip_logic import SkipLogicEngine
from survey_flow.store import ResponseStore

logger = logging.getLogger(__name__)


def _percentage(answered: int, total: int) -> int:
    return round_half_up(100 * answered / total) if total else 0


class SequencingController:
    """Session-aware navigation over a question catalog.

    Args:
        catalog: a loaded :class:`QuestionCatalog`
        store: where sessions, responses and analytics are persisted
        scoring: scoring engine fed with every response (built if omitted)
        skip_logic: next-question resolver (built if omitted)
    """

    def __init__(
        self,
        catalog: QuestionCatalog,
        store: ResponseStore,
        scoring: ScoringEngine | None = None,
        skip_logic: SkipLogicEngine | None = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._scoring = scoring or ScoringEngine(catalog, store)
        self._skip = skip_logic or SkipLogicEngine(catalog)

        self._session: Optional[Session] = None
        self._responses: dict[str, Response] = {}
        self._history: list[str] = []
        self._report: Optional[FinalReport] = None

    # ==================================================================
    # State
    # ==================================================================

    @property
    def session(self) -> Session:
        if self._session is None:
            raise InvalidTransitionError("No active session; call start_session() or initialize()")
        return self._session

    @property
    def responses(self) -> dict[str, Response]:
        """Responses given so far, keyed by question id."""
        return dict(self._responses)

    @property
    def history(self) -> tuple[str, ...]:
        """Question ids visited in this controller, oldest first."""
        return tuple(self._history)

    @property
    def scoring(self) -> ScoringEngine:
        return self._scoring

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def start_session(self) -> Session:
        """Create a new session positioned on the catalog's first question."""
        first = self._catalog.first()
        session = await self._store.create_session(
            current_question=first.id,
            current_section=first.section,
            catalog_version=self._catalog.version or None,
        )
        await self._bind(session, [])
        logger.info("Started session %s at %s", session.id, first.id)
        return session

    async def initialize(self, session_id: str) -> Session:
        """Load an existing session and its responses.

        Raises:
            SessionNotFoundError: if the store has no such session.
        """
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        responses = await self._store.get_session_responses(session_id)
        await self._bind(session, responses)
        logger.info(
            "Loaded session %s at %s (%d responses)",
            session.id,
            session.current_question,
            len(responses),
        )
        return session

    async def resume_latest(self) -> Optional[Session]:
        """Resume the most recently modified in-progress session, if any."""
        pending = await self._store.get_incomplete_sessions()
        if not pending:
            return None
        return await self.initialize(pending[0].id)

    async def _bind(self, session: Session, responses: list[Response]) -> None:
        self._session = session
        self._responses = {r.question_id: r for r in responses}
        self._history = [self.current_question().id]
        self._report = None
        await self._scoring.initialize(session.id)

    def _require_active(self) -> Session:
        session = self.session
        if session.is_completed:
            raise InvalidTransitionError(f"Session {session.id} is already completed")
        return session

    # ==================================================================
    # Navigation
    # ==================================================================

    def current_question(self) -> Question:
        """The session's current question; the first question if it no longer resolves."""
        question = self._catalog.find(self.session.current_question)
        if question is None:
            logger.warning(
                "Session %s points at unknown question %s, using first question",
                self.session.id,
                self.session.current_question,
            )
            return self._catalog.first()
        return question

    async def advance(
        self,
        value: Any,
        *,
        question_id: str | None = None,
        specify: Any = None,
    ) -> Optional[Question]:
        """Record an answer and move to the next eligible question.

        Args:
            value: the raw answer (see ``build_payload``) or a payload model
            question_id: question being answered; defaults to the current one
            specify: optional "please specify" text for the answer

        Returns:
            The next question, or None when the questionnaire is finished
            (the session then stays on the last answered question).

        Raises:
            InvalidTransitionError: if the session is completed.
            QuestionNotFoundError: if ``question_id`` is unknown.
            ValueError: if ``value`` does not fit the question type.
        """
        session = self._require_active()
        question = self._catalog.get(question_id) if question_id else self.current_question()
        payload = build_payload(question, value)

        response = await self._store.save_response(
            session.id, question.id, payload, section=question.section, specify=specify
        )
        self._responses[question.id] = response

        stakeholder_type = session.stakeholder_type
        if question.id == self._catalog.stakeholder_question:
            stakeholder_type = response.trigger_value

        next_question = self._skip.next_question(question.id, self._responses, stakeholder_type)

        fields: dict[str, Any] = {
            "stakeholder_type": stakeholder_type,
            "progress": self.progress().percentage,
        }
        if next_question is not None:
            fields["current_question"] = next_question.id
            fields["current_section"] = next_question.section
        self._session = await self._store.update_session(session.id, fields)

        if next_question is not None:
            self._history.append(next_question.id)
        else:
            logger.info("Session %s reached the end of the questionnaire", session.id)

        await self._scoring.process_response(response, stakeholder_type)
        return next_question

    async def navigate_to(self, question_id: str) -> Question:
        """Jump to ``question_id`` regardless of skip logic.

        Raises:
            InvalidTransitionError: if the session is completed.
            QuestionNotFoundError: if ``question_id`` is unknown.
        """
        session = self._require_active()
        question = self._catalog.get(question_id)
        await self._move(session, question)
        return question

    def previous_question(self) -> Optional[Question]:
        """The nearest eligible question before the current one (no state change)."""
        return self._skip.previous_eligible(
            self.current_question().id, self._responses, self.session.stakeholder_type
        )

    async def go_back(self) -> Optional[Question]:
        """Move to the previous eligible question.

        Returns None, without changing state, at the start of the catalog.
        """
        session = self._require_active()
        previous = self.previous_question()
        if previous is None:
            return None
        await self._move(session, previous)
        return previous

    async def _move(self, session: Session, question: Question) -> None:
        self._session = await self._store.update_session(
            session.id,
            {"current_question": question.id, "current_section": question.section},
        )
        self._history.append(question.id)

    # ==================================================================
    # Progress
    # ==================================================================

    def progress(self) -> Progress:
        """Distinct answered catalog questions over catalog size."""
        total = len(self._catalog)
        answered = sum(1 for qid in self._responses if qid in self._catalog)
        return Progress(percentage=_percentage(answered, total), answered=answered, total=total)

    def section_progress(self) -> list[SectionProgress]:
        """Per-section answered counts, in section declaration order."""
        result = []
        for section in self._catalog.sections.values():
            total = len(section.question_ids)
            answered = sum(1 for qid in section.question_ids if qid in self._responses)
            result.append(
                SectionProgress(
                    section_id=section.id,
                    title=section.title,
                    answered=answered,
                    total=total,
                    percentage=_percentage(answered, total),
                )
            )
        return result

    def can_submit(self) -> bool:
        """True iff every required question has a stored response."""
        return all(q.id in self._responses for q in self._catalog.required_questions())

    def missing_required(self) -> list[str]:
        """Ids of required questions still unanswered."""
        return [q.id for q in self._catalog.required_questions() if q.id not in self._responses]

    # ==================================================================
    # Completion
    # ==================================================================

    async def complete(self) -> FinalReport:
        """Produce the final report and mark the session completed.

        The report is built before the completion write, so a failure
        leaves the session in progress.  Only the first call changes
        state; later calls return the report produced by the first one.
        """
        session = self.session
        if session.is_completed:
            return await self._stored_report(session)

        await self._scoring.compute_final_assessment(session.id)
        report = await self._scoring.generate_final_report(session.id)

        self._session = await self._store.update_session(
            session.id,
            {
                "completion_status": SessionStatus.COMPLETED,
                "completed_at": datetime.now(timezone.utc),
                "progress": self.progress().percentage,
            },
        )
        logger.info("Session %s completed", session.id)
        self._report = report
        return report

    async def _stored_report(self, session: Session) -> FinalReport:
        if self._report is not None:
            return self._report
        record = await self._store.get_analytics(session.id, METRIC_FINAL_REPORT)
        if record is not None:
            try:
                self._report = FinalReport.model_validate(record.data)
                return self._report
            except ValidationError as exc:
                logger.warning("Stored final report for %s is unreadable: %s", session.id, exc)
        self._report = await self._scoring.generate_final_report(session.id)
        return self._report

    async def export(self) -> SessionExport:
        """Everything stored for the current session."""
        return await self._store.export_session_data(self.session.id)
