# backend/exceptions.py
from typing import Any, Dict, Optional


# Base class for every business-rule failure raised by the services.
# Routes let these propagate; main.py maps them onto HTTP responses.
class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        if self.field:
            body["field"] = self.field
        if self.context:
            body["context"] = self.context
        return body


# Malformed or out-of-range input
class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


# Request is well formed but clashes with the current state of the store
class ConflictError(DomainError):
    status_code = 409


# The store failed for a reason unrelated to business rules. Never retried here.
class UpstreamError(DomainError):
    status_code = 502


class LimitExceededError(ValidationError):
    pass


class DuplicateComponentError(ConflictError):
    pass


class CycleDetectedError(ConflictError):
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, name: str, *, product_id: int, available: int, requested: int, is_set: bool = False):
        label = f'set "{name}"' if is_set else f'"{name}"'
        super().__init__(
            f"insufficient stock for {label} — available: {available}",
            field="quantity",
            context={"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested
