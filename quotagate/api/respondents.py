"""
FastAPI router module for the respondent qualification flow.

Each share token drives one QualificationProtocol held in the session
registry. Every endpoint returns the protocol snapshot after the operation.

Endpoints:
- POST /respondents/{token}/start: resolve the token and enter screening
- GET  /respondents/{token}: current snapshot
- POST /respondents/{token}/screening/answer: answer a screening question
- POST /respondents/{token}/screening/next: advance (checks on the last question)
- POST /respondents/{token}/screening/previous: go back one question
- POST /respondents/{token}/begin: start the survey once qualified
- POST /respondents/{token}/answers: answer a survey question
- POST /respondents/{token}/submit: submit the survey
- POST /respondents/{token}/unload: respondent left the page

A session is released once it reaches a final state (not qualified, quota
full, load error, already submitted, submitted without auto-restart) and
its snapshot has been returned; later calls for that token answer 404.

Error mapping:
- unknown or released token session -> 404
- operation not allowed in the current state -> 409
- unanswered required questions, unknown question/option -> 400
"""

import logging
from typing import Dict

from fastapi import APIRouter, HTTPException

from quotagate.core.dependencies import OracleDep, SessionRegistryDep, SettingsDep, StoreDep
from quotagate.models.schemas import ProtocolSnapshot, ScreeningAnswerRequest, SurveyAnswerRequest
from quotagate.services.qualification import (
    IncompleteAnswersError,
    ProtocolError,
    ProtocolRegistry,
    QualificationProtocol,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def _session(registry: ProtocolRegistry, token: str) -> QualificationProtocol:
    try:
        return registry.get(token)
    except KeyError:
        raise HTTPException(
            status_code=404,
            detail=f"No respondent session for token {token}"
        )


def _served(registry: ProtocolRegistry, token: str, snapshot: ProtocolSnapshot) -> ProtocolSnapshot:
    # A finished session is dropped once its final snapshot is on the way out
    registry.release_if_finished(token)
    return snapshot


def _client_error(e: Exception) -> HTTPException:
    if isinstance(e, ProtocolError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, IncompleteAnswersError):
        return HTTPException(status_code=400, detail={"message": str(e), "missing": e.missing})
    return HTTPException(status_code=400, detail=str(e))


@router.post("/{token}/start", response_model=ProtocolSnapshot)
async def start_session(
    token: str,
    oracle: OracleDep,
    store: StoreDep,
    settings: SettingsDep,
    registry: SessionRegistryDep,
) -> ProtocolSnapshot:
    """
    Start (or restart) the qualification flow for a share token.

    Load failures are not HTTP errors: the snapshot reports LOAD_ERROR.
    """
    try:
        protocol = await registry.start(token, oracle, store, settings)
        logger.info(f"Started respondent session for token {token}: {protocol.state.value}")
        return protocol.snapshot()

    except Exception as e:
        logger.exception(f"Error starting respondent session for token {token}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start respondent session: {str(e)}"
        )


@router.get("/{token}", response_model=ProtocolSnapshot)
async def get_session(token: str, registry: SessionRegistryDep) -> ProtocolSnapshot:
    return _served(registry, token, _session(registry, token).snapshot())


@router.post("/{token}/screening/answer", response_model=ProtocolSnapshot)
async def answer_screening(
    token: str,
    request: ScreeningAnswerRequest,
    registry: SessionRegistryDep,
) -> ProtocolSnapshot:
    protocol = _session(registry, token)
    try:
        return protocol.answer_screening(request.questionId, request.optionId)
    except (ProtocolError, ValueError) as e:
        raise _client_error(e)


@router.post("/{token}/screening/next", response_model=ProtocolSnapshot)
async def next_screening(token: str, registry: SessionRegistryDep) -> ProtocolSnapshot:
    protocol = _session(registry, token)
    try:
        return _served(registry, token, await protocol.next_screening())

    except ProtocolError as e:
        raise _client_error(e)
    except Exception as e:
        logger.exception(f"Error advancing screening for token {token}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to advance screening: {str(e)}"
        )


@router.post("/{token}/screening/previous", response_model=ProtocolSnapshot)
async def previous_screening(token: str, registry: SessionRegistryDep) -> ProtocolSnapshot:
    protocol = _session(registry, token)
    try:
        return protocol.previous_screening()
    except ProtocolError as e:
        raise _client_error(e)


@router.post("/{token}/begin", response_model=ProtocolSnapshot)
async def begin_survey(token: str, registry: SessionRegistryDep) -> ProtocolSnapshot:
    protocol = _session(registry, token)
    try:
        return protocol.begin_survey()
    except ProtocolError as e:
        raise _client_error(e)


@router.post("/{token}/answers", response_model=ProtocolSnapshot)
async def answer_question(
    token: str,
    request: SurveyAnswerRequest,
    registry: SessionRegistryDep,
) -> ProtocolSnapshot:
    protocol = _session(registry, token)
    try:
        return protocol.answer_question(request.questionId, request.value)
    except (ProtocolError, ValueError) as e:
        raise _client_error(e)


@router.post("/{token}/submit", response_model=ProtocolSnapshot)
async def submit_survey(token: str, registry: SessionRegistryDep) -> ProtocolSnapshot:
    """
    Submit the survey.

    A failed submission is not an HTTP error: the snapshot returns to
    TAKING_SURVEY with `error` set so the respondent can retry.
    """
    protocol = _session(registry, token)
    try:
        return _served(registry, token, await protocol.submit())

    except (ProtocolError, IncompleteAnswersError) as e:
        raise _client_error(e)
    except Exception as e:
        logger.exception(f"Error submitting survey for token {token}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to submit survey: {str(e)}"
        )


@router.post("/{token}/unload")
async def unload(token: str, registry: SessionRegistryDep) -> Dict[str, bool]:
    protocol = _session(registry, token)
    return {"notified": protocol.notify_unload()}
