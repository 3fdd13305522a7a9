from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, desc, or_, select

from tabletip_api.api.schemas import (
    CreateReviewRequest,
    CreateReviewResponse,
    PublicReview,
    PublicReviewsResponse,
)
from tabletip_api.db.models import Location, Review, Tip
from tabletip_api.db.session import DbSessionDep
from tabletip_api.domain.assignments import find_active_assignment
from tabletip_api.domain.errors import AppError
from tabletip_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["reviews"])


@router.post("/reviews", response_model=CreateReviewResponse)
async def create_review(payload: CreateReviewRequest, db: DbSessionDep) -> CreateReviewResponse:
    assignment = await find_active_assignment(db, payload.qr_code)
    if assignment is None:
        raise AppError(
            code="qr_code_not_found",
            message="Invalid or inactive QR code",
            status_code=404,
        )

    if payload.linked_tip_id is not None:
        tip = await db.get(Tip, payload.linked_tip_id)
        if tip is None or tip.server_assignment_id != assignment.id:
            raise AppError(
                code="linked_tip_invalid",
                message="Linked tip does not belong to this server",
                status_code=400,
                details={"linked_tip_id": str(payload.linked_tip_id)},
            )

    comment = (payload.comment or "").strip() or None
    review = Review(
        org_id=assignment.org_id,
        location_id=assignment.location_id,
        server_id=assignment.server_id,
        server_assignment_id=assignment.id,
        sentiment=payload.sentiment,
        rating_emoji=payload.rating_emoji,
        comment=comment,
        is_anonymous=payload.is_anonymous,
        contact_email=None if payload.is_anonymous else payload.contact_email,
        linked_tip_id=payload.linked_tip_id,
    )
    db.add(review)
    await db.commit()
    logger.info(
        "review_created",
        extra={"review_id": str(review.id), "server_assignment_id": str(assignment.id)},
    )
    return CreateReviewResponse(review_id=review.id)


@router.get("/locations/{location_id}/reviews", response_model=PublicReviewsResponse)
async def list_public_reviews(
    location_id: uuid.UUID,
    db: DbSessionDep,
    settings: Settings = Depends(get_settings),
    limit: int | None = Query(default=None, ge=1),
) -> PublicReviewsResponse:
    """Anonymous reviews for a location, plus org-wide reviews not tied to any location."""
    location = await db.get(Location, location_id)
    if location is None:
        raise AppError(code="location_not_found", message="Location not found", status_code=404)

    page_size = min(limit or settings.public_reviews_default_limit, settings.public_reviews_max_limit)
    rows = (
        await db.execute(
            select(Review, Tip.amount_cents, Tip.currency)
            .outerjoin(Tip, Review.linked_tip_id == Tip.id)
            .where(
                Review.is_anonymous.is_(True),
                or_(
                    Review.location_id == location_id,
                    and_(Review.location_id.is_(None), Review.org_id == location.org_id),
                ),
            )
            .order_by(desc(Review.created_at))
            .limit(page_size)
        )
    ).all()

    return PublicReviewsResponse(
        location_id=location_id,
        reviews=[
            PublicReview(
                id=review.id,
                created_at=review.created_at,
                rating_emoji=review.rating_emoji,
                sentiment=review.sentiment,
                comment=review.comment,
                tip_amount_cents=amount_cents,
                tip_currency=currency,
            )
            for review, amount_cents, currency in rows
        ],
    )
