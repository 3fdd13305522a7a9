from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tabletip_api.db.models import QrCode, ServerAssignment


async def find_active_assignment(db: AsyncSession, qr_code: str) -> ServerAssignment | None:
    """Resolve a scanned QR code to its server assignment; both must be active."""
    return await db.scalar(
        select(ServerAssignment)
        .join(QrCode, QrCode.server_assignment_id == ServerAssignment.id)
        .where(
            QrCode.code == qr_code,
            QrCode.is_active.is_(True),
            ServerAssignment.is_active.is_(True),
        )
    )
