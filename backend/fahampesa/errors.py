# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class FahamPesaError(Exception):
    """
    Base class for expected, user-visible failures.

    status_code maps the error onto the HTTP envelope; hints are merged into
    the JSON error body so clients can offer follow-up actions.
    """
    status_code = 500

    def __init__(self, message: str, **hints):
        super().__init__(message)
        self.message = message
        self.hints = hints

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, **self.hints}


class ValidationError(FahamPesaError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(FahamPesaError):
    """404: referenced entity does not exist."""
    status_code = 404


class AccessDeniedError(FahamPesaError):
    """403: entity belongs to a different tenant."""
    status_code = 403


class InvalidStateTransitionError(FahamPesaError):
    """400: workflow action is not legal from the current status."""
    status_code = 400

    def __init__(self, entity: str, action: str, status: str, allowed=None):
        message = f"Cannot {action} {entity} in {status} status"
        hints = {"current_status": status}
        if allowed:
            hints["allowed_statuses"] = sorted(allowed)
        super().__init__(message, **hints)


class InsufficientStockError(FahamPesaError):
    """400: movement or reservation would drive stock negative."""
    status_code = 400

    def __init__(self, product_id: int, branch_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} at branch {branch_id}. "
            f"Available: {available}, requested: {requested}",
            product_id=product_id,
            branch_id=branch_id,
            available=available,
            requested=requested,
        )


class ConflictError(FahamPesaError):
    """409: concurrent writes kept conflicting, or a guarded operation is blocked."""
    status_code = 409


class BranchInUseError(ConflictError):
    """409: branch or supplier is referenced by history; caller may archive instead."""
