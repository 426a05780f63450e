"""Daily challenge endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stackpulse.database import get_session
from stackpulse.dependencies import get_event_bus
from stackpulse.errors import StackPulseError, http_error
from stackpulse.events.bus import UpdateEventBus
from stackpulse.events.publish import publish_challenge_completed
from stackpulse.gamification.challenge_service import (
    complete_challenge,
    create_challenge,
    get_daily_challenge,
)
from stackpulse.gamification.schemas import (
    ChallengeCreateRequest,
    ChallengeResponse,
    CompleteChallengeRequest,
    CompleteChallengeResponse,
    CompletionResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge_endpoint(
    body: ChallengeCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    """Schedule a challenge for a day."""
    challenge = await create_challenge(
        db, title=body.title, day=body.day, description=body.description, is_active=body.is_active
    )
    await db.commit()
    logger.info("challenge_created", challenge_id=challenge.id, day=str(body.day))
    return ChallengeResponse.model_validate(challenge)


@router.get("/daily", response_model=ChallengeResponse)
async def daily_challenge(db: AsyncSession = Depends(get_session)) -> ChallengeResponse:
    """The active challenge for the current UTC day."""
    try:
        challenge = await get_daily_challenge(db)
    except StackPulseError as e:
        raise http_error(e) from e
    return ChallengeResponse.model_validate(challenge)


@router.post("/complete/{challenge_id}", response_model=CompleteChallengeResponse, status_code=201)
async def complete_challenge_endpoint(
    challenge_id: int,
    body: CompleteChallengeRequest,
    db: AsyncSession = Depends(get_session),
    bus: UpdateEventBus = Depends(get_event_bus),
) -> CompleteChallengeResponse:
    """Mark a challenge completed. Each user completes a challenge once."""
    try:
        completion = await complete_challenge(db, body.username, challenge_id)
    except StackPulseError as e:
        raise http_error(e) from e
    await db.commit()
    logger.info("challenge_completed", challenge_id=challenge_id, username=body.username)
    publish_challenge_completed(bus, completion)
    return CompleteChallengeResponse(
        detail="Challenge completed successfully",
        completion=CompletionResponse.model_validate(completion),
    )
