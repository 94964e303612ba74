"""
Respondent Qualification Protocol

This module runs the finite-state flow a visitor goes through from opening a
share link to being marked complete:

    LOADING -> SCREENING (forward/back) -> CHECKING
        -> QUALIFIED -> TAKING_SURVEY -> SUBMITTING -> SUBMITTED -> COMPLETION_MARKED
        -> NOT_QUALIFIED | QUOTA_FULL                         (terminal)
    LOADING -> ALREADY_SUBMITTED | LOAD_ERROR                  (terminal)

Rules:
- A survey without screening questions goes straight to CHECKING; the oracle
  may still report the overall quota as full.
- At most one qualification check is in flight per respondent.
- Qualification is never assumed locally. Only `qualified=true` from the
  oracle qualifies; transport errors, timeouts and malformed verdicts all end
  in NOT_QUALIFIED. QUOTA_FULL is the one distinguishable reason.
- Answers are submitted keyed by the share token.
- "Mark completed" is called at most once, only when the oracle returned a
  respondent id, and its failure never fails the submission.
- Vendor beacons ("complete" after submission, "incomplete" on unload while
  taking the survey) run in the background and only log failures.
- When the survey settings request auto-restart, a successful submission
  schedules a delayed reset so the next respondent can start at screening.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Set

from quotagate.core.config import Settings
from quotagate.core.storage import KeyValueStore, submitted_key
from quotagate.models.enums import ProtocolState, QualificationStatus, TerminationReason
from quotagate.models.schemas import (
    ProtocolSnapshot,
    QualificationRequest,
    QuotaRedirects,
    Respondent,
    ScreeningAnswer,
    ScreeningQuestion,
    SurveyAnswer,
    SurveyDefinition,
)
from quotagate.services.quota_oracle import OracleError, QuotaOracleClient

logger = logging.getLogger(__name__)


_CLOSED_SURVEY_STATUSES = {"CLOSED", "ARCHIVED"}

# No further respondent operation is possible from these states
_FINAL_STATES = {
    ProtocolState.NOT_QUALIFIED,
    ProtocolState.QUOTA_FULL,
    ProtocolState.LOAD_ERROR,
    ProtocolState.ALREADY_SUBMITTED,
    ProtocolState.SUBMITTED,
    ProtocolState.COMPLETION_MARKED,
}


# =============================================================================
# Exceptions
# =============================================================================

class ProtocolError(Exception):
    """An operation is not allowed in the protocol's current state."""


class IncompleteAnswersError(Exception):
    """Required survey questions are unanswered."""

    def __init__(self, missing: List[str]):
        super().__init__(f"Please answer all required questions ({len(missing)} missing)")
        self.missing = missing


# =============================================================================
# Protocol
# =============================================================================

class QualificationProtocol:
    """
    Qualification flow for one respondent, identified by a share token.

    Args:
        token: Share token from the survey link; also the vendor respondent id
        oracle: Remote survey API client
        store: Key-value store holding the local "submitted" marker
        settings: Application settings
    """

    def __init__(
        self,
        token: str,
        oracle: QuotaOracleClient,
        store: KeyValueStore,
        settings: Settings,
    ):
        self.token = token
        self._oracle = oracle
        self._store = store
        self._settings = settings

        self.state = ProtocolState.LOADING
        self.survey_id: Optional[str] = None
        self.survey: Optional[SurveyDefinition] = None
        self.redirects = QuotaRedirects()
        self.screening_questions: List[ScreeningQuestion] = []
        self.current_index = 0
        self.respondent = Respondent(vendor_respondent_id=token)
        self.answers: Dict[str, Any] = {}
        self.response_id: Optional[str] = None
        self.termination_reason: Optional[TerminationReason] = None
        self.error: Optional[str] = None

        self._check_in_flight = False
        self._completion_requested = False
        self._background: Set[asyncio.Task] = set()
        self._restart_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require(self, *states: ProtocolState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise ProtocolError(f"Operation not allowed in state {self.state.value} (expected {allowed})")

    def _terminate(self, state: ProtocolState, reason: Optional[TerminationReason]) -> None:
        self.state = state
        self.termination_reason = reason

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def current_question(self) -> Optional[ScreeningQuestion]:
        if 0 <= self.current_index < len(self.screening_questions):
            return self.screening_questions[self.current_index]
        return None

    @property
    def redirect_url(self) -> Optional[str]:
        if self.state == ProtocolState.NOT_QUALIFIED:
            return self.redirects.terminatedUrl
        if self.state == ProtocolState.QUOTA_FULL:
            return self.redirects.quotaFullUrl
        if self.state in (ProtocolState.SUBMITTED, ProtocolState.COMPLETION_MARKED):
            return self.redirects.completedUrl
        return None

    @property
    def is_finished(self) -> bool:
        """In a final state with no auto-restart pending."""
        if self.state not in _FINAL_STATES:
            return False
        return self._restart_task is None or self._restart_task.done()

    def _current_answered(self) -> bool:
        question = self.current_question
        return question is not None and question.id in self.respondent.screeningAnswers

    # -------------------------------------------------------------------------
    # LOADING
    # -------------------------------------------------------------------------

    async def load(self) -> ProtocolSnapshot:
        """Resolve the share token and enter screening (or checking)."""
        self._require(ProtocolState.LOADING)

        if self._store.get(submitted_key(self.token)):
            logger.info(f"Token {self.token} already has a recorded submission")
            self._terminate(ProtocolState.ALREADY_SUBMITTED, None)
            return self.snapshot()

        try:
            resolution = await self._oracle.resolve_share_token(self.token)
        except OracleError as e:
            logger.warning(f"Failed to resolve share token {self.token}: {e}")
            self.error = e.message
            self._terminate(ProtocolState.LOAD_ERROR, TerminationReason.GENERIC)
            return self.snapshot()

        self.survey_id = resolution.surveyId
        self.survey = resolution.survey
        self.redirects = resolution.quota or QuotaRedirects()

        if resolution.used:
            self._terminate(ProtocolState.ALREADY_SUBMITTED, None)
            return self.snapshot()

        if (self.survey.status or "").upper() in _CLOSED_SURVEY_STATUSES:
            self._terminate(ProtocolState.LOAD_ERROR, TerminationReason.SURVEY_CLOSED)
            return self.snapshot()

        try:
            self.screening_questions = await self._oracle.fetch_screening_questions(self.survey_id)
        except OracleError as e:
            logger.warning(f"Failed to fetch screening questions for survey {self.survey_id}: {e}")
            self.error = e.message
            self._terminate(ProtocolState.LOAD_ERROR, TerminationReason.GENERIC)
            return self.snapshot()

        if not self.screening_questions:
            return await self.check_qualification()

        self.state = ProtocolState.SCREENING
        return self.snapshot()

    # -------------------------------------------------------------------------
    # SCREENING
    # -------------------------------------------------------------------------

    def answer_screening(self, question_id: str, option_id: str) -> ProtocolSnapshot:
        """
        Record the respondent's option for a screening question.

        Raises:
            ProtocolError: If not screening
            ValueError: If the question or option is unknown
        """
        self._require(ProtocolState.SCREENING)
        question = next((q for q in self.screening_questions if q.id == question_id), None)
        if question is None:
            raise ValueError(f"Unknown screening question: {question_id}")
        if not any(o.id == option_id for o in question.options):
            raise ValueError(f"Unknown option {option_id} for screening question {question_id}")
        self.respondent.screeningAnswers[question_id] = option_id
        return self.snapshot()

    async def next_screening(self) -> ProtocolSnapshot:
        """Advance to the next question, or run the check after the last one."""
        self._require(ProtocolState.SCREENING)
        if not self._current_answered():
            raise ProtocolError("Answer the current question before continuing")
        if self.current_index >= len(self.screening_questions) - 1:
            return await self.check_qualification()
        self.current_index += 1
        return self.snapshot()

    def previous_screening(self) -> ProtocolSnapshot:
        self._require(ProtocolState.SCREENING)
        if self.current_index == 0:
            raise ProtocolError("Already at the first screening question")
        self.current_index -= 1
        return self.snapshot()

    # -------------------------------------------------------------------------
    # CHECKING
    # -------------------------------------------------------------------------

    def _qualification_request(self) -> QualificationRequest:
        answers = []
        for question in self.screening_questions:
            option_id = self.respondent.screeningAnswers.get(question.id)
            if option_id is None:
                continue
            option = next(o for o in question.options if o.id == option_id)
            answers.append(ScreeningAnswer(
                screeningQuestionId=question.id,
                screeningOptionId=option.id,
                answerValue=option.value,
            ))
        return QualificationRequest(vendor_respondent_id=self.token, screeningAnswers=answers)

    async def check_qualification(self) -> ProtocolSnapshot:
        """
        Ask the oracle for a verdict.

        Raises:
            ProtocolError: If a check is already in flight, the protocol is
                not screening, or a required screening question is unanswered
        """
        if self._check_in_flight:
            raise ProtocolError("A qualification check is already in progress")
        self._require(ProtocolState.SCREENING, ProtocolState.LOADING)

        unanswered = [
            q.id for q in self.screening_questions
            if q.required and q.id not in self.respondent.screeningAnswers
        ]
        if unanswered:
            raise ProtocolError(f"Unanswered screening questions: {', '.join(unanswered)}")

        self._check_in_flight = True
        self.state = ProtocolState.CHECKING
        try:
            verdict = await self._oracle.check_qualification(self._qualification_request())
        except OracleError as e:
            logger.warning(f"Qualification check failed for token {self.token}, treating as not qualified: {e}")
            verdict = None
        finally:
            self._check_in_flight = False

        if verdict is not None and verdict.qualified is True:
            self.respondent.qualified = True
            self.respondent.respondentId = verdict.respondent_id
            self.state = ProtocolState.QUALIFIED
            logger.info(f"Token {self.token} qualified (respondent {verdict.respondent_id})")
        elif verdict is not None and verdict.status == QualificationStatus.QUOTA_FULL.value:
            self.respondent.qualified = False
            self._terminate(ProtocolState.QUOTA_FULL, TerminationReason.QUOTA_FULL)
            logger.info(f"Token {self.token} rejected: quota full")
        else:
            self.respondent.qualified = False
            self._terminate(ProtocolState.NOT_QUALIFIED, TerminationReason.NOT_QUALIFIED)
            logger.info(f"Token {self.token} not qualified")

        return self.snapshot()

    # -------------------------------------------------------------------------
    # TAKING_SURVEY
    # -------------------------------------------------------------------------

    def begin_survey(self) -> ProtocolSnapshot:
        self._require(ProtocolState.QUALIFIED)
        self.state = ProtocolState.TAKING_SURVEY
        return self.snapshot()

    def answer_question(self, question_id: str, value: Any) -> ProtocolSnapshot:
        self._require(ProtocolState.TAKING_SURVEY)
        if not any(q.id == question_id for q in self.survey.questions):
            raise ValueError(f"Unknown survey question: {question_id}")
        self.answers[question_id] = value
        return self.snapshot()

    def _missing_required(self) -> List[str]:
        missing = []
        for question in self.survey.questions:
            if not question.required:
                continue
            value = self.answers.get(question.id)
            if value is None or value == "" or value == []:
                missing.append(question.id)
        return missing

    # -------------------------------------------------------------------------
    # SUBMITTING
    # -------------------------------------------------------------------------

    async def submit(self) -> ProtocolSnapshot:
        """
        Submit the survey answers.

        Raises:
            ProtocolError: If the survey is not being taken
            IncompleteAnswersError: If a required question is unanswered
        """
        self._require(ProtocolState.TAKING_SURVEY)
        missing = self._missing_required()
        if missing:
            raise IncompleteAnswersError(missing)

        types = {q.id: q.question_type for q in self.survey.questions}
        answers = [
            SurveyAnswer(questionId=qid, answer_type=types.get(qid, "TEXT"), answer_value=value)
            for qid, value in self.answers.items()
        ]

        self.state = ProtocolState.SUBMITTING
        self.error = None
        try:
            receipt = await self._oracle.submit_response(self.token, answers)
        except OracleError as e:
            if e.status_code == 409:
                logger.info(f"Token {self.token} was already used for a submission")
                self._terminate(ProtocolState.ALREADY_SUBMITTED, None)
                return self.snapshot()
            logger.warning(f"Submission failed for token {self.token}: {e}")
            self.error = e.message
            self.state = ProtocolState.TAKING_SURVEY
            return self.snapshot()

        self.response_id = receipt.id
        self.respondent.completed = True
        self.state = ProtocolState.SUBMITTED
        self._store.set(submitted_key(self.token), {"surveyId": self.survey_id, "responseId": receipt.id})
        logger.info(f"Token {self.token} submitted response {receipt.id}")

        await self._mark_completed()
        self._spawn(self._oracle.send_vendor_redirect(self.token, is_completed=True))
        self._schedule_restart()
        return self.snapshot()

    async def _mark_completed(self) -> None:
        respondent_id = self.respondent.respondentId
        if not respondent_id or self._completion_requested:
            return
        self._completion_requested = True
        try:
            await self._oracle.mark_respondent_completed(self.survey_id, respondent_id, self.response_id)
        except OracleError as e:
            logger.warning(f"Failed to mark respondent {respondent_id} completed: {e}")
            return
        self.state = ProtocolState.COMPLETION_MARKED

    # -------------------------------------------------------------------------
    # Abandonment & auto-restart
    # -------------------------------------------------------------------------

    def notify_unload(self) -> bool:
        """Fire the "incomplete" beacon if the respondent leaves mid-survey."""
        if self.state != ProtocolState.TAKING_SURVEY:
            return False
        self._spawn(self._oracle.send_vendor_redirect(self.token, is_completed=False))
        return True

    def _schedule_restart(self) -> None:
        settings = self.survey.settings if self.survey else None
        if settings is None or not settings.autoRestart:
            return
        delay = settings.autoRestartDelaySeconds
        if delay is None:
            delay = self._settings.auto_restart_delay_seconds
        self._restart_task = asyncio.ensure_future(self._restart_after(delay))
        self._restart_task.add_done_callback(self._restart_done)

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.reset()

    def _restart_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Auto-restart failed for token {self.token}: {exc}", exc_info=exc)

    async def reset(self) -> ProtocolSnapshot:
        """Clear screening and survey state for the next respondent; survey config is kept."""
        self._store.delete(submitted_key(self.token))
        self.respondent = Respondent(vendor_respondent_id=self.token)
        self.answers = {}
        self.current_index = 0
        self.response_id = None
        self.termination_reason = None
        self.error = None
        self._completion_requested = False
        logger.info(f"Auto-restarting survey {self.survey_id} for token {self.token}")

        if not self.screening_questions:
            self.state = ProtocolState.LOADING
            return await self.check_qualification()
        self.state = ProtocolState.SCREENING
        return self.snapshot()

    async def wait_for_background(self) -> None:
        """Wait for pending beacons to finish."""
        if self._background:
            await asyncio.gather(*list(self._background))

    async def close(self) -> None:
        """Cancel the pending auto-restart and wait for pending beacons."""
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
            try:
                await self._restart_task
            except asyncio.CancelledError:
                pass
        await self.wait_for_background()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def snapshot(self) -> ProtocolSnapshot:
        screening = self.state == ProtocolState.SCREENING
        return ProtocolSnapshot(
            state=self.state,
            surveyId=self.survey_id,
            surveyTitle=self.survey.title if self.survey else None,
            currentScreeningIndex=self.current_index,
            screeningQuestionCount=len(self.screening_questions),
            currentScreeningQuestion=self.current_question if screening else None,
            canGoBack=screening and self.current_index > 0,
            canGoNext=screening and self._current_answered(),
            surveyQuestions=(
                list(self.survey.questions)
                if self.survey and self.state in (ProtocolState.QUALIFIED, ProtocolState.TAKING_SURVEY)
                else []
            ),
            respondent=self.respondent.model_copy(deep=True),
            terminationReason=self.termination_reason,
            terminationMessage=self.termination_reason.default_message if self.termination_reason else None,
            redirectUrl=self.redirect_url,
            error=self.error,
        )


# =============================================================================
# Session Registry
# =============================================================================

class ProtocolRegistry:
    """
    Live protocols keyed by share token.

    A protocol is released as soon as it is finished, once the caller has
    its final snapshot. Released protocols are closed in the background so
    pending beacons still complete.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, QualificationProtocol] = {}
        self._closing: Set[asyncio.Task] = set()

    async def start(
        self,
        token: str,
        oracle: QuotaOracleClient,
        store: KeyValueStore,
        settings: Settings,
    ) -> QualificationProtocol:
        """
        Start (or restart) the flow for a token and run LOADING.

        The returned protocol is already released when loading finished it
        (used token, load error, or a verdict for a survey without screening).
        """
        previous = self._sessions.pop(token, None)
        if previous is not None:
            await previous.close()
        protocol = QualificationProtocol(token, oracle, store, settings)
        self._sessions[token] = protocol
        await protocol.load()
        self.release_if_finished(token)
        return protocol

    def release_if_finished(self, token: str) -> bool:
        """Drop the token's protocol if it is finished; returns whether it was dropped."""
        protocol = self._sessions.get(token)
        if protocol is None or not protocol.is_finished:
            return False
        del self._sessions[token]
        task = asyncio.ensure_future(protocol.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
        logger.debug(f"Released finished session for token {token} ({protocol.state.value})")
        return True

    def get(self, token: str) -> QualificationProtocol:
        """
        Raises:
            KeyError: If no flow was started for the token
        """
        return self._sessions[token]

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for protocol in sessions:
            await protocol.close()
        if self._closing:
            await asyncio.gather(*list(self._closing))

    def __len__(self) -> int:
        return len(self._sessions)
