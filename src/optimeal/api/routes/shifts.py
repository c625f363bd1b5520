from fastapi import APIRouter, Depends

from optimeal.api.deps import get_calendar
from optimeal.core.shifts import ShiftCalendar
from optimeal.schemas.shift import ShiftList

router = APIRouter(prefix="/shifts", tags=["shifts"])


@router.get("/", response_model=ShiftList)
async def list_shifts(calendar: ShiftCalendar = Depends(get_calendar)):
    """
    Допустимые смены выдачи (включая "all").
    """
    offset = calendar.tz.utcoffset(None)
    return ShiftList(
        shifts=calendar.valid_labels(),
        timezone_offset_minutes=int(offset.total_seconds() // 60) if offset is not None else None,
    )
