"""
Ошибки ядра заказов.

Каждая ошибка несёт машинно-читаемый `reason`, человекочитаемое сообщение
и HTTP-статус, с которым её отдаёт обработчик в main.py.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


class OrderingError(Exception):
    reason = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        return {
            "success": False,
            "reason": self.reason,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(OrderingError):
    reason = "validation_error"
    status_code = 400


class NotFound(OrderingError):
    reason = "not_found"
    status_code = 404


@dataclass(frozen=True)
class StockShortage:
    product_id: int
    name: str
    requested: int
    available: int


class InsufficientStock(OrderingError):
    reason = "insufficient_stock"
    status_code = 409

    def __init__(self, shortages: List[StockShortage]):
        self.shortages = list(shortages)
        message = "Insufficient stock for products: " + "; ".join(
            f"{s.name} (ID: {s.product_id}): requested {s.requested}, available {s.available}"
            for s in self.shortages
        )
        super().__init__(message, details={"shortages": [asdict(s) for s in self.shortages]})


class InvalidTransition(OrderingError):
    reason = "invalid_transition"
    status_code = 409


class GatewayError(OrderingError):
    reason = "gateway_error"
    status_code = 502


class ConfigError(OrderingError):
    reason = "config_error"
    status_code = 500
