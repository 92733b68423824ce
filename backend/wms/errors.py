# Overview: Domain error taxonomy shared by the lifecycle engine, ledger and resolver.

"""
Every error raised by the core is a DomainError. Services raise them
untranslated; the HTTP layer maps http_status/code to a response.

Only ConflictError is meant to be retried by a caller, after re-reading
the document version. The core itself never retries it.
"""

from __future__ import annotations


class DomainError(ValueError):
    """Base for business-rule failures."""

    http_status = 400
    code = "domain_error"

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class ValidationError(DomainError):
    """400-level input or content-policy problem."""

    code = "validation_error"


class NotFoundError(DomainError):
    http_status = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ForbiddenError(DomainError):
    """Actor lacks the role, permission, approval tier or scope for an action."""

    http_status = 403
    code = "forbidden"


class InvalidTransitionError(DomainError):
    http_status = 409
    code = "invalid_transition"

    def __init__(self, document_type: str, status: str, action: str, allowed_actions: list[str]):
        self.document_type = document_type
        self.status = status
        self.action = action
        self.allowed_actions = sorted(allowed_actions)
        allowed = ", ".join(self.allowed_actions) or "none"
        super().__init__(
            f"Cannot '{action}' {document_type} in status '{status}'. Allowed actions: {allowed}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["allowed_actions"] = self.allowed_actions
        return data


class ConflictError(DomainError):
    """409: the version read by the caller no longer matches storage."""

    http_status = 409
    code = "conflict"


class InsufficientStockError(DomainError):
    http_status = 409
    code = "insufficient_stock"

    def __init__(self, item_id: int, warehouse_id: int, requested: int, available: int):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for item {item_id} in warehouse {warehouse_id}. "
            f"Available: {available}, requested: {requested}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            item_id=self.item_id,
            warehouse_id=self.warehouse_id,
            requested=self.requested,
            available=self.available,
        )
        return data


class AlreadyReleasedError(DomainError):
    http_status = 409
    code = "already_released"


class AlreadyConsumedError(DomainError):
    http_status = 409
    code = "already_consumed"


class LotStateError(DomainError):
    http_status = 409
    code = "lot_state"
