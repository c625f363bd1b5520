from typing import List, Optional

from pydantic import BaseModel


class PrepLine(BaseModel):
    id: int
    name: str
    total_to_prepare: int
    prepared_quantity: int
    remaining_to_prepare: int


class ShiftSummary(BaseModel):
    shift: str
    main_dishes: List[PrepLine] = []
    sides: List[PrepLine] = []
    total_main_dishes: int = 0
    total_sides: int = 0


class ShiftList(BaseModel):
    shifts: List[str]
    timezone_offset_minutes: Optional[int] = None
