from __future__ import annotations

import asyncio
import json
import re
import uuid
from pathlib import Path

from sqlalchemy import select

from tabletip_api.db.models import Location, Organization, QrCode, ServerAssignment
from tabletip_api.db.session import create_sessionmaker
from tabletip_api.settings import get_settings

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _is_valid_evm_address(value: str) -> bool:
    return isinstance(value, str) and bool(_EVM_ADDRESS_RE.fullmatch(value))


async def main() -> None:
    settings = get_settings()
    sessionmaker = create_sessionmaker(settings.database_url)
    seed_path = Path(__file__).resolve().parents[1] / "data" / "seed" / "demo_venue.json"
    seed = json.loads(seed_path.read_text(encoding="utf-8"))

    async with sessionmaker() as db:
        org_row = seed["organization"]
        org_id = uuid.UUID(org_row["id"])
        organization = await db.get(Organization, org_id)
        if organization is None:
            organization = Organization(id=org_id, name=org_row["name"], slug=org_row["slug"])
            db.add(organization)
        else:
            organization.name = org_row["name"]
            organization.slug = org_row["slug"]

        location_row = seed["location"]
        location_id = uuid.UUID(location_row["id"])
        location = await db.get(Location, location_id)
        if location is None:
            location = Location(id=location_id, org_id=org_id, name=location_row["name"])
            db.add(location)
        location.name = location_row["name"]
        location.address = location_row.get("address")
        location.timezone = location_row.get("timezone")
        await db.flush()

        for row in seed["servers"]:
            wallet = row.get("payout_wallet_address")
            if wallet is not None and not _is_valid_evm_address(wallet):
                raise ValueError(f"Invalid payout wallet in seed data: {wallet}")

            assignment_id = uuid.UUID(row["assignment_id"])
            assignment = await db.get(ServerAssignment, assignment_id)
            if assignment is None:
                assignment = ServerAssignment(
                    id=assignment_id,
                    org_id=org_id,
                    location_id=location_id,
                    server_id=uuid.UUID(row["server_id"]),
                )
                db.add(assignment)
            assignment.display_name_override = row["display_name"]
            assignment.payout_wallet_address = wallet.lower() if wallet else None
            assignment.is_active = True
            await db.flush()

            for qr_row in row.get("qr_codes", []):
                qr = await db.scalar(select(QrCode).where(QrCode.code == qr_row["code"]))
                if qr is None:
                    qr = QrCode(code=qr_row["code"], server_assignment_id=assignment_id)
                    db.add(qr)
                qr.server_assignment_id = assignment_id
                qr.short_code = qr_row.get("short_code")
                qr.table_label = qr_row.get("table_label")
                qr.is_active = True

        await db.commit()


if __name__ == "__main__":
    asyncio.run(main())
