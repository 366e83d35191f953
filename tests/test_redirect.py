"""Redirect endpoint behavior tests."""

import datetime

import pytest
from httpx import AsyncClient


async def create(client: AsyncClient, headers: dict[str, str], **payload) -> str:
    payload.setdefault("long_url", "https://www.python.org")
    response = await client.post("/v1/links", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["code"]


@pytest.mark.asyncio
async def test_redirect_valid_code(client: AsyncClient, auth_headers) -> None:
    code = await create(client, auth_headers())

    # httpx does not follow redirects by default
    response = await client.get(f"/r/{code}")
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.python.org"


@pytest.mark.asyncio
async def test_redirect_invalid_code(client: AsyncClient) -> None:
    response = await client.get("/r/nonexistent")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_redirect_counts_clicks(client: AsyncClient, auth_headers) -> None:
    code = await create(client, auth_headers())

    for _ in range(3):
        await client.get(f"/r/{code}")

    stats = await client.get(f"/v1/links/{code}", headers=auth_headers())
    assert stats.json()["click_count"] == 3


@pytest.mark.asyncio
async def test_redirect_after_expiry(client: AsyncClient, auth_headers) -> None:
    past = (datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=1)).isoformat()
    code = await create(client, auth_headers(), expires_at=past)

    response = await client.get(f"/r/{code}")
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_redirect_after_click_cap(client: AsyncClient, auth_headers) -> None:
    code = await create(client, auth_headers(), max_clicks=2)

    assert (await client.get(f"/r/{code}")).status_code == 302
    assert (await client.get(f"/r/{code}")).status_code == 302
    assert (await client.get(f"/r/{code}")).status_code == 410


@pytest.mark.asyncio
async def test_password_gate(client: AsyncClient, auth_headers) -> None:
    code = await create(client, auth_headers(), password="s3cret")

    form = await client.get(f"/r/{code}")
    assert form.status_code == 200
    assert "Password Required" in form.text
    assert f'action="/v1/links/{code}/verify"' in form.text

    wrong = await client.post(f"/v1/links/{code}/verify", data={"password": "nope"})
    assert wrong.status_code == 401

    right = await client.post(f"/v1/links/{code}/verify", data={"password": "s3cret"})
    assert right.status_code == 200
    cookie = right.cookies.get(f"verified_{code}")
    assert cookie

    response = await client.get(f"/r/{code}", headers={"Cookie": f"verified_{code}={cookie}"})
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.python.org"


@pytest.mark.asyncio
async def test_forged_cookie_shows_form(client: AsyncClient, auth_headers) -> None:
    code = await create(client, auth_headers(), password="s3cret")

    response = await client.get(f"/r/{code}", headers={"Cookie": f"verified_{code}=true"})
    assert response.status_code == 200
    assert "Password Required" in response.text


@pytest.mark.asyncio
async def test_redirect_survives_dead_cache(client: AsyncClient, auth_headers, manager, failing_cache) -> None:
    code = await create(client, auth_headers())
    manager.cache = failing_cache

    response = await client.get(f"/r/{code}")
    assert response.status_code == 302
