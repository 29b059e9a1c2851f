"""
Reports API - the Profitability Report and its exports.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response

from ..reports.profitability import build_report, report_csv, report_excel
from .state import Services, get_services

router = APIRouter(prefix="/api/crm/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _attachment(name: str, ext: str) -> dict:
    filename = f"{name}-{datetime.now().strftime('%Y-%m-%d')}.{ext}"
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/profitability")
async def profitability_report(
    top_n: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Margin summary, per-category aggregation and product ranking."""
    report = build_report(services.catalog.all_products(), top_n=top_n)
    return jsonable_encoder(report)


@router.get("/profitability/export.csv")
async def export_profitability_csv(services: Services = Depends(get_services)):
    report = build_report(services.catalog.all_products())
    return Response(
        content=report_csv(report),
        media_type="text/csv",
        headers=_attachment("profitability-report", "csv"),
    )


@router.get("/profitability/export.xlsx")
async def export_profitability_xlsx(services: Services = Depends(get_services)):
    report = build_report(services.catalog.all_products())
    return Response(
        content=report_excel(report),
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment("profitability-report", "xlsx"),
    )
