"""
Revenue Router
Computes the per-order revenue snapshot and flips its cancelled/refunded flags
"""
from typing import Optional

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.auth import get_organization_from_request
from core.config import logger
from core.database import get_db
from core.errors import RevenueError
from utils.revenue import get_revenue, mark_revenue_status

router = APIRouter(prefix="/api/report", tags=["revenue"])


class RevenueStatusUpdate(BaseModel):
    cancelled: Optional[bool] = None
    refunded: Optional[bool] = None


def error_response(ex: Exception) -> JSONResponse:
    if isinstance(ex, RevenueError):
        return JSONResponse(ex.to_dict(), status_code=ex.status_code)
    return JSONResponse({"error": "database_error", "detail": "Failed to store revenue"}, status_code=500)


@router.post("/order/{order_id}")
async def compute_order_revenue(order_id: str, request: Request, db: Session = Depends(get_db)):
    org = get_organization_from_request(request)
    if not org:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    outcome = await get_revenue(db, order_id, org)
    if not outcome.ok:
        return error_response(outcome.error)
    return JSONResponse(
        {"revenue": outcome.revenue.to_dict(), "created": outcome.created},
        status_code=201 if outcome.created else 200,
    )


@router.patch("/order/{order_id}/status")
async def update_order_revenue_status(
    order_id: str,
    payload: RevenueStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    org = get_organization_from_request(request)
    if not org:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    if payload.cancelled is None and payload.refunded is None:
        return JSONResponse({"error": "bad_request", "detail": "Nothing to update"}, status_code=400)

    try:
        revenue = mark_revenue_status(db, order_id, org, cancelled=payload.cancelled, refunded=payload.refunded)
    except RevenueError as ex:
        return error_response(ex)
    except SQLAlchemyError as ex:
        logger.error(f"[revenue] status update failed for {order_id}: {ex}")
        return error_response(ex)
    return {"revenue": revenue.to_dict()}
