"""
Contract Error Taxonomy

Every refusal raised by the engine derives from ContractError and carries a
stable ``code`` so clients can branch on the rule that failed without parsing
messages. Errors never carry private field values or the fingerprints of
parties other than the caller.

    ContractError
    ├── ValidationError              malformed id / description / reason / payload
    ├── NotFoundError                unknown id, or private data never written
    ├── AlreadyExistsError           duplicate id on create
    ├── AccessDeniedError            role or ownership check failed
    ├── InvalidStateTransitionError  transition not in the table
    └── AlreadyActedError            role already acted in the current cycle

Ledger collaborator failures (MVCC conflicts, corrupt documents) are a
separate hierarchy rooted at LedgerError.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Tuple


class ContractError(Exception):
    """Base class for every refusal produced by the contract engine."""

    code = "CONTRACT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(ContractError):
    """Input failed a syntactic check."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class NotFoundError(ContractError):
    code = "NOT_FOUND"


class AlreadyExistsError(ContractError):
    code = "ALREADY_EXISTS"


class AccessDeniedError(ContractError):
    """
    Role or ownership check failed.

    Carries the attempted operation and the allowed-role set. The caller's own
    role is included since the caller already knows it; nothing about the
    target record is.
    """

    code = "ACCESS_DENIED"

    def __init__(
        self,
        operation: str,
        allowed_roles: Iterable[str],
        role: str = "",
        reason: str = "",
    ):
        self.operation = operation
        self.allowed_roles: Tuple[str, ...] = tuple(allowed_roles)
        self.role = role
        self.reason = reason
        allowed = ", ".join(self.allowed_roles) or "<none>"
        msg = f"{operation}: role '{role}' not authorized. Allowed: {allowed}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["operation"] = self.operation
        d["allowed_roles"] = list(self.allowed_roles)
        return d


class InvalidStateTransitionError(ContractError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        current: str,
        requested: str,
        operation: Optional[str] = None,
        detail: str = "",
    ):
        self.current = current
        self.requested = requested
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        msg = f"{prefix}Invalid state transition: {current} -> {requested}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["current"] = self.current
        d["requested"] = self.requested
        return d


class AlreadyActedError(ContractError):
    code = "ALREADY_ACTED"

    def __init__(self, role: str, action: str):
        self.role = role
        self.action = action
        super().__init__(f"Role '{role}' has already {action} this asset in the current review cycle")


# =============================================================================
# LEDGER COLLABORATOR ERRORS
# =============================================================================

class LedgerError(Exception):
    """Failure inside the ledger collaborator rather than the contract."""
    pass


class MVCCConflictError(LedgerError):
    """A key read by the transaction was committed by someone else first."""

    def __init__(self, tx_id: str, key: str, read_version: int, current_version: int):
        self.tx_id = tx_id
        self.key = key
        self.read_version = read_version
        self.current_version = current_version
        super().__init__(
            f"MVCC_READ_CONFLICT: tx {tx_id} read {key}@{read_version}, "
            f"committed version is {current_version}"
        )


class CorruptRecordError(LedgerError):
    """A stored document does not decode or does not match its schema."""
    pass
