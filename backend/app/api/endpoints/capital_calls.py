"""
Capital call API endpoints
"""
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from typing import List
from datetime import date

from app.api.deps import get_capital_call_service
from app.schemas.capital_call import (
    CalendarEntry,
    CapitalCall as CapitalCallSchema,
    CapitalCallCreate,
    CapitalCallCreateResponse,
    CapitalCallSummary,
    DatesUpdate,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    Payment as PaymentSchema,
    PaymentCreate,
    PaymentResponse,
    StatusUpdate,
)
from app.services.capital_call_service import CapitalCallService
from app.services.excel_exporter import CapitalCallExcelExporter

router = APIRouter()


@router.get("", response_model=List[CapitalCallSchema])
async def list_capital_calls(service: CapitalCallService = Depends(get_capital_call_service)):
    """List all capital calls ordered by call date"""
    return await service.list_capital_calls()


@router.post("", response_model=CapitalCallCreateResponse)
async def create_capital_call(
    request: CapitalCallCreate,
    response: Response,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """
    Create a single capital call

    Resubmitting a call for the same allocation and call date returns the
    existing call with status 200 instead of 201.
    """
    call, is_new = await service.create_capital_call(request.model_dump())
    response.status_code = 201 if is_new else 200
    return {"capital_call": call, "is_new": is_new}


@router.post("/generate", response_model=GenerateScheduleResponse, status_code=201)
async def generate_capital_calls(
    request: GenerateScheduleRequest,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Generate capital calls for an allocation from a schedule type"""
    custom_schedule = None
    if request.custom_schedule:
        custom_schedule = [entry.model_dump(by_alias=True) for entry in request.custom_schedule]

    results = await service.generate_capital_calls(
        request.allocation_id,
        request.schedule_type,
        call_count=request.call_count,
        call_percentage=request.call_percentage,
        total_percentage=request.total_percentage,
        custom_schedule=custom_schedule,
        first_call_date=request.first_call_date
    )

    created = sum(1 for _, is_new in results if is_new)
    return {
        "allocation_id": request.allocation_id,
        "schedule_type": request.schedule_type,
        "created": created,
        "existing": len(results) - created,
        "capital_calls": [call for call, _ in results],
    }


@router.get("/calendar", response_model=List[CalendarEntry])
async def get_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Capital calls with a call date in [start_date, end_date]"""
    return await service.get_calendar(start_date, end_date)


@router.get("/export")
async def export_capital_calls(
    fund_id: int = Query(...),
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Download a fund's allocations, capital calls and payments as Excel"""
    exporter = CapitalCallExcelExporter(service.storage)
    excel_file = await exporter.export_fund(fund_id)

    return StreamingResponse(
        excel_file,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=capital_calls_fund_{fund_id}.xlsx"}
    )


@router.get("/allocation/{allocation_id}", response_model=List[CapitalCallSchema])
async def get_allocation_capital_calls(
    allocation_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """List an allocation's capital calls"""
    return await service.get_capital_calls_by_allocation(allocation_id)


@router.get("/allocation/{allocation_id}/summary", response_model=CapitalCallSummary)
async def get_allocation_summary(
    allocation_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Paid, outstanding, pending and overdue totals for an allocation"""
    return await service.get_capital_call_summary(allocation_id)


@router.get("/{call_id}", response_model=CapitalCallSchema)
async def get_capital_call(
    call_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Get capital call details"""
    return await service.get_capital_call(call_id)


@router.patch("/{call_id}/status", response_model=CapitalCallSchema)
async def update_capital_call_status(
    call_id: int,
    request: StatusUpdate,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Move a capital call to a new status"""
    return await service.update_status(
        call_id,
        request.status,
        paid_amount=request.paid_amount,
        payment_date=request.paid_date,
        payment_type=request.payment_type,
        notes=request.notes,
        created_by=request.created_by
    )


@router.patch("/{call_id}/dates", response_model=CapitalCallSchema)
async def update_capital_call_dates(
    call_id: int,
    request: DatesUpdate,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Reschedule a capital call"""
    return await service.update_dates(call_id, request.call_date, request.due_date)


@router.post("/{call_id}/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    call_id: int,
    request: PaymentCreate,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Record a payment against a capital call"""
    call, payment = await service.record_payment(
        call_id,
        request.amount,
        payment_date=request.payment_date,
        payment_type=request.payment_type,
        notes=request.notes,
        created_by=request.created_by
    )
    return {"capital_call": call, "payment": payment}


@router.get("/{call_id}/payments", response_model=List[PaymentSchema])
async def list_payments(
    call_id: int,
    service: CapitalCallService = Depends(get_capital_call_service)
):
    """Payment history of a capital call"""
    return await service.list_payments(call_id)
