"""Error taxonomy shared by services, repositories and the HTTP layer.

Every error carries a stable ``code`` that calling UIs branch on
(``VALIDATION_*``, ``NOT_FOUND``, ``CONFLICT``, ``INVALID_OPERATION``,
``REPOSITORY_ERROR``) and the HTTP status the API answers with.
"""

from __future__ import annotations

from typing import Optional


class MnemoraError(Exception):
    """Base class for every failure surfaced by a Mnemora operation."""

    code: str = "USE_CASE_ERROR"
    status_code: int = 400

    def __init__(self, message: str, code: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.cause = cause

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class DomainValidationError(MnemoraError):
    """Malformed or missing input (empty name, unparseable ID, ...)."""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        code = f"VALIDATION_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code=code)
        self.field = field


class NotFoundError(MnemoraError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} with ID '{entity_id}' not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(MnemoraError):
    """Session-run exclusivity or deletion blocked by live references."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str, active_session_id: Optional[str] = None):
        super().__init__(message)
        self.active_session_id = active_session_id


class InvalidOperationError(MnemoraError):
    """A domain rule forbids the operation in the current state."""

    code = "INVALID_OPERATION"
    status_code = 409


class RepositoryError(MnemoraError):
    """Storage-layer failure; the underlying cause is kept opaque."""

    code = "REPOSITORY_ERROR"
    status_code = 500
