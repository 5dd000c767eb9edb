"""FastAPI application exposing velocity checks."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import create_tables, dispose_engine, get_session
from ..models import ReviewFlag, ReviewFlagStatus
from ..services.configuration import SECURITY_SECTION
from ..services.velocity import (
    ConfigNotFoundError,
    VelocityAnalyzer,
    close_velocity_analyzer,
    get_velocity_analyzer,
)

app = FastAPI(title="Velocity Guard API")


class InvalidateRequest(BaseModel):
    namespace: str | None = SECURITY_SECTION


@app.on_event("startup")
async def startup() -> None:
    await create_tables()


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_velocity_analyzer()
    await dispose_engine()


@app.exception_handler(ConfigNotFoundError)
async def config_not_found_handler(request: Request, exc: ConfigNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"code": exc.code, "category": exc.category, "detail": str(exc)},
    )


def _require_admin(request: Request) -> None:
    secret = request.headers.get("x-admin-secret")
    if secret != settings.admin_secret.get_secret_value():
        raise HTTPException(status_code=403, detail="Invalid secret")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/affiliates/{affiliate_id}/indications")
async def record_indication(
    affiliate_id: str,
    analyzer: VelocityAnalyzer = Depends(get_velocity_analyzer),
) -> dict[str, Any]:
    verdict = await analyzer.record_and_evaluate(affiliate_id)
    return verdict.to_dict()


@app.get("/affiliates/{affiliate_id}/velocity")
async def velocity(
    affiliate_id: str,
    analyzer: VelocityAnalyzer = Depends(get_velocity_analyzer),
) -> dict[str, Any]:
    verdict = await analyzer.analyze_actor(affiliate_id)
    return verdict.to_dict()


@app.get("/affiliates/{affiliate_id}/admission")
async def admission(
    affiliate_id: str,
    category: str,
    analyzer: VelocityAnalyzer = Depends(get_velocity_analyzer),
) -> dict[str, bool]:
    return {"permitted": await analyzer.check_admission(affiliate_id, category)}


@app.post("/admin/configuration/invalidate", dependencies=[Depends(_require_admin)])
async def invalidate_configuration(
    payload: InvalidateRequest,
    analyzer: VelocityAnalyzer = Depends(get_velocity_analyzer),
) -> dict[str, str]:
    analyzer.invalidate_config(payload.namespace)
    return {"status": "ok"}


@app.get("/admin/review-flags", dependencies=[Depends(_require_admin)])
async def review_flags(session: AsyncSession = Depends(get_session)) -> list[dict[str, Any]]:
    stmt = (
        select(ReviewFlag)
        .where(ReviewFlag.status == ReviewFlagStatus.OPEN)
        .order_by(ReviewFlag.id)
    )
    flags = (await session.execute(stmt)).scalars().all()
    return [
        {"id": flag.id, "affiliate_id": flag.affiliate_id, "reason": flag.reason}
        for flag in flags
    ]


__all__ = ["app"]
