# backend/leadflow/services/submission_store.py
"""Read/write access to intake submissions."""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.models import Submission
from leadflow.schemas import SubmissionCreate

logger = logging.getLogger(__name__)


class SubmissionStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        payload: SubmissionCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Submission:
        """Add a submission to the current transaction. The caller commits."""
        submission = Submission(
            contact_name=payload.contact_name,
            company_email=str(payload.company_email),
            contact_phone=payload.contact_phone,
            company_website=payload.company_website,
            country=payload.country,
            company_size=payload.company_size,
            product_interest=payload.product_interest,
            how_can_we_help=payload.how_can_we_help,
            privacy_policy=payload.privacy_policy,
            mock_behavioral_data=payload.mock_behavioral_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(submission)
        await self.db.flush()
        logger.info(f"📝 Stored submission {submission.id} from {submission.company_email}")
        return submission

    async def get_by_id(self, submission_id: str) -> Optional[Submission]:
        try:
            key = submission_id if isinstance(submission_id, uuid.UUID) else uuid.UUID(str(submission_id))
        except ValueError:
            logger.warning(f"Invalid submission id: {submission_id!r}")
            return None
        return await self.db.get(Submission, key)
