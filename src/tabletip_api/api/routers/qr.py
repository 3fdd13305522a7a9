from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import select

from tabletip_api.api.schemas import QrContextResponse
from tabletip_api.db.models import Location, Organization, QrCode, ServerAssignment
from tabletip_api.db.session import DbSessionDep
from tabletip_api.domain.chains import SUPPORTED_CHAINS
from tabletip_api.domain.errors import AppError

router = APIRouter(prefix="/v1", tags=["qr"])


@router.get("/qr/{code}", response_model=QrContextResponse)
async def resolve_qr_code(code: str, db: DbSessionDep) -> QrContextResponse:
    """Public context for the customer review flow behind a scanned QR code."""
    row = (
        await db.execute(
            select(QrCode, ServerAssignment, Organization, Location)
            .join(ServerAssignment, QrCode.server_assignment_id == ServerAssignment.id)
            .join(Organization, ServerAssignment.org_id == Organization.id)
            .outerjoin(Location, ServerAssignment.location_id == Location.id)
            .where(
                QrCode.code == code,
                QrCode.is_active.is_(True),
                ServerAssignment.is_active.is_(True),
            )
        )
    ).first()
    if row is None:
        raise AppError(
            code="qr_code_not_found",
            message="Invalid or inactive QR code",
            status_code=404,
        )

    qr, assignment, organization, location = row
    return QrContextResponse(
        qr_code=qr.code,
        server_assignment_id=assignment.id,
        server_id=assignment.server_id,
        server_display_name=assignment.display_name_override,
        org_id=organization.id,
        organization_name=organization.name,
        location_id=location.id if location else None,
        location_name=location.name if location else None,
        table_label=qr.table_label,
        accepts_crypto=bool(assignment.payout_wallet_address),
        payout_wallet_address=assignment.payout_wallet_address,
        supported_chain_ids=sorted(SUPPORTED_CHAINS),
    )
