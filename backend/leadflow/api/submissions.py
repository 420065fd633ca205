"""Contact-form intake endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import uuid4
import logging

from leadflow.api.deps import get_event_bus
from leadflow.database import get_db
from leadflow.schemas import LEAD_SUBMITTED, SubmissionAck, SubmissionCreate
from leadflow.services.submission_store import SubmissionStore
from leadflow.workflow.events import EventBus

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=SubmissionAck, status_code=status.HTTP_201_CREATED)
async def create_submission(
    payload: SubmissionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus)
):
    """
    Store a contact-form submission and queue its enrichment.

    The submission and its `lead/submitted` event are committed together;
    the response does not wait for enrichment.
    """
    session_id = payload.session_id or str(uuid4())
    ip_address = request.client.host if request.client else None

    try:
        submission = await SubmissionStore(db).create(
            payload,
            ip_address=ip_address,
            user_agent=request.headers.get("user-agent"),
        )
        event_id = await event_bus.send(
            LEAD_SUBMITTED,
            {"submissionId": str(submission.id), "sessionId": session_id},
            idempotency_key=f"submission:{submission.id}",
            db=db,
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ Failed to store submission from {payload.company_email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store submission"
        )

    logger.info(f"📨 Submission {submission.id} accepted (event {event_id})")

    return SubmissionAck(
        success=True,
        message="Thank you! We received your request and will be in touch shortly.",
        submission_id=str(submission.id),
        event_id=event_id,
        session_id=session_id,
    )
