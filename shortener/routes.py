"""FastAPI route definitions for the short link service.

This module keeps HTTP concerns (status codes, cookies, the password form)
out of the service layer. Business rejections are raised by the service as
``LinkServiceError`` and rendered by the handler installed in ``main``.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /v1/links                 scope links:write
        └─ CreateLinkResponse (201) or 400/401/409

    GET    /v1/links/{code}          scope links:read
        └─ LinkResponse (200) or 404

    PATCH  /v1/links/{code}          scope links:write
        └─ 204 or 400/403/404

    DELETE /v1/links/{code}          scope links:write
        └─ 204 or 403/404

    POST   /v1/links/{code}/verify   form: password
        └─ 200 + verified cookie, or 401

    GET    /r/{code}
        └─ 302 redirect, password form (200), 404 or 410

Redirect Flow Diagram
=====================
::
    ┌─────────────┐
    │ GET /r/code  │
    └──────┬──────┘
           ▼
    ┌─────────────┐   absent
    │ get_link()   │ ─────────▶ 404
    └──────┬──────┘
           ▼
    ┌─────────────┐   yes
    │ is_expired?  │ ─────────▶ 410
    └──────┬──────┘
           ▼
    ┌─────────────┐   gated, no valid cookie
    │ password?    │ ─────────▶ HTML form
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ count click  │
    └──────┬──────┘
           ▼
          302
"""

import html

from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from shortener.auth import (
    CallerIdentity,
    require_scopes,
    sign_verification,
    verification_cookie_name,
    verify_verification,
)
from shortener.dependencies import (
    RequestContext,
    ServiceManager,
    get_link_service,
    get_request_context,
    get_service_manager,
)
from shortener.enums import HealthStatus
from shortener.link_service import LinkService
from shortener.schemas import CreateLinkRequest, CreateLinkResponse, HealthResponse, LinkResponse, UpdateLinkRequest

__all__ = ["router"]

router = APIRouter()

_PASSWORD_FORM = """<html>
<head>
\t<title>Password Required</title>
\t<meta charset="UTF-8">
\t<meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body>
<h2>Enter Password to Access Link</h2>
<form method="post" action="/v1/links/{code}/verify">
<label>Password: <input type="password" name="password" required></label>
<input type="submit" value="Submit">
</form>
</body>
</html>"""


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(manager: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.repository.ping()
    except Exception as e:
        manager.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await manager.cache.ping()
    except Exception as e:
        manager.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/v1/links", response_model=CreateLinkResponse, status_code=201, tags=["links"])
async def create_link(
    payload: CreateLinkRequest,
    identity: CallerIdentity = Depends(require_scopes("links:write")),
    service: LinkService = Depends(get_link_service),
) -> CreateLinkResponse:
    return await service.create_link(payload, caller_identity=identity.subject)


@router.get("/v1/links/{code}", response_model=LinkResponse, tags=["links"])
async def get_link(
    code: str,
    identity: CallerIdentity = Depends(require_scopes("links:read")),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    link = await service.get_link(code)
    if link is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return LinkResponse.from_link(link, service.settings.short_url_base)


@router.patch("/v1/links/{code}", status_code=204, tags=["links"])
async def update_link(
    code: str,
    payload: UpdateLinkRequest,
    identity: CallerIdentity = Depends(require_scopes("links:write")),
    service: LinkService = Depends(get_link_service),
) -> Response:
    await service.update_link(code, payload, caller_identity=identity.subject)
    return Response(status_code=204)


@router.delete("/v1/links/{code}", status_code=204, tags=["links"])
async def delete_link(
    code: str,
    identity: CallerIdentity = Depends(require_scopes("links:write")),
    service: LinkService = Depends(get_link_service),
) -> Response:
    await service.delete_link(code, caller_identity=identity.subject)
    return Response(status_code=204)


@router.post("/v1/links/{code}/verify", tags=["links"])
async def verify_password(
    code: str,
    request: Request,
    password: str = Form(...),
    service: LinkService = Depends(get_link_service),
) -> Response:
    if not await service.verify_password(code, password):
        raise HTTPException(status_code=401, detail="Unauthorized")

    settings = service.settings
    response = Response(status_code=200)
    response.set_cookie(
        key=verification_cookie_name(code),
        value=sign_verification(code, settings),
        path=f"{settings.SHORT_URL_PATH_PREFIX}{code}",
        max_age=settings.VERIFIED_COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="strict",
    )
    return response


@router.get("/r/{code}", tags=["redirect"])
async def redirect_to_link(
    code: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> Response:
    link = await service.get_link(code)
    if link is None:
        raise HTTPException(status_code=404, detail="Not found")

    if service.is_expired(link):
        raise HTTPException(status_code=410, detail="Gone")

    if link.has_password:
        cookie = request.cookies.get(verification_cookie_name(code))
        if not verify_verification(code, cookie, service.settings):
            return HTMLResponse(_PASSWORD_FORM.format(code=html.escape(code)), status_code=200)

    await service.increment_click_count(code)

    ctx.logger.info(f"Redirect served: {code} in {ctx.get_duration():.1f}ms")
    return RedirectResponse(url=link.long_url, status_code=302)
