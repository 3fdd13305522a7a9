from __future__ import annotations

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_qr_context(client: AsyncClient, seed_venue) -> None:
    venue = await seed_venue()

    response = await client.get(f"/v1/qr/{venue.qr_code}")

    assert response.status_code == 200
    body = response.json()
    assert body["server_assignment_id"] == str(venue.assignment_id)
    assert body["server_display_name"] == "Sam"
    assert body["organization_name"] == "Harbor Bistro"
    assert body["location_name"] == "Harbor Bistro Downtown"
    assert body["table_label"] == "7"
    assert body["accepts_crypto"] is True
    assert body["supported_chain_ids"] == [1, 137, 8453, 42161, 84532]


@pytest.mark.asyncio
async def test_qr_without_wallet_does_not_accept_crypto(client: AsyncClient, seed_venue) -> None:
    venue = await seed_venue(payout_wallet_address=None)

    response = await client.get(f"/v1/qr/{venue.qr_code}")

    assert response.status_code == 200
    assert response.json()["accepts_crypto"] is False


@pytest.mark.asyncio
async def test_inactive_qr_code_is_not_found(client: AsyncClient, seed_venue) -> None:
    venue = await seed_venue(qr_active=False)

    response = await client.get(f"/v1/qr/{venue.qr_code}")

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "qr_code_not_found"
    assert body["error"] == "Invalid or inactive QR code"
