"""
Reports Router
Revenue, category and supplier reports over stored revenue snapshots
"""
from typing import Optional

from fastapi import APIRouter, Request, Query, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_organization_from_request
from core.database import get_db
from utils.currency import parse_currency
from utils.revenue_report import category_revenue_report, parse_date_range, revenue_report
from utils.supplier_report import supplier_report

router = APIRouter(prefix="/api/report", tags=["reports"])


def _range_or_error(date_from: Optional[str], date_to: Optional[str]):
    if not date_from or not date_to:
        return None, JSONResponse({"error": "bad_request", "detail": "Missing from/to"}, status_code=400)
    try:
        return parse_date_range(date_from, date_to), None
    except ValueError as ex:
        return None, JSONResponse({"error": "bad_request", "detail": str(ex)}, status_code=400)


@router.get("/revenue")
async def get_revenue_report(
    request: Request,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    currency: Optional[str] = Query("USD"),
    db: Session = Depends(get_db),
):
    org = get_organization_from_request(request)
    if not org:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    window, err = _range_or_error(date_from, date_to)
    if err:
        return err
    return revenue_report(db, org, window[0], window[1], parse_currency(currency))


@router.get("/category-revenue")
async def get_category_revenue_report(
    request: Request,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    currency: Optional[str] = Query("USD"),
    db: Session = Depends(get_db),
):
    org = get_organization_from_request(request)
    if not org:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    window, err = _range_or_error(date_from, date_to)
    if err:
        return err
    return category_revenue_report(db, org, window[0], window[1], parse_currency(currency))


@router.get("/suppliers")
async def get_supplier_report(
    request: Request,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    currency: Optional[str] = Query("USD"),
    supplier_org_id: Optional[str] = Query(None, alias="supplierOrgId"),
    status: Optional[str] = Query("all"),
    db: Session = Depends(get_db),
):
    org = get_organization_from_request(request)
    if not org:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    window, err = _range_or_error(date_from, date_to)
    if err:
        return err
    try:
        return supplier_report(
            db, org, window[0], window[1], parse_currency(currency),
            supplier_org_id=supplier_org_id, status=status or "all",
        )
    except ValueError as ex:
        return JSONResponse({"error": "bad_request", "detail": str(ex)}, status_code=400)
