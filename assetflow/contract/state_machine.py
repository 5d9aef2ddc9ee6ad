"""
Asset State Machine

Each operation is a pure function

    (current_record, request, tx) -> OperationResult(record, output)

with no access to storage, clocks or randomness. ``current_record`` is None
when the id is unused. The caller (ContractEngine) has already validated the
request and run the access-policy checks; what remains here is transition
legality and the mutation itself.

Approval cycle:

    SubmitForApproval    approvals := {role: PENDING for every required role}
    ApproveAsset         approvals[role] := true
                         all true ⇒ status := APPROVED in the same operation
    RejectAsset          approvals[role] := {reason, timestamp}
                         status := REJECTED immediately
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from assetflow.contract.errors import (
    AlreadyActedError,
    AlreadyExistsError,
    InvalidStateTransitionError,
    NotFoundError,
)
from assetflow.contract.identity import CallerIdentity
from assetflow.contract.model import Asset, AssetStatus, Rejection, pending_approvals
from assetflow.contract.policy import Ops


@dataclass(frozen=True)
class TxContext:
    """What an operation may know about its transaction."""
    tx_id: str
    timestamp: str
    caller: CallerIdentity


@dataclass(frozen=True)
class AssetRequest:
    """Validated operation arguments."""
    asset_id: str
    description: Optional[str] = None
    reason: Optional[str] = None
    required_approvals: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OperationResult:
    record: Asset
    output: Dict[str, Any] = field(default_factory=dict)


Operation = Callable[[Optional[Asset], AssetRequest, TxContext], OperationResult]

UPDATABLE = frozenset({AssetStatus.CREATED, AssetStatus.REJECTED})


def _require(current: Optional[Asset], asset_id: str) -> Asset:
    if current is None:
        raise NotFoundError(f"Asset {asset_id} does not exist")
    return current


def check_transition(current: AssetStatus, target: AssetStatus, operation: str) -> None:
    """Raise InvalidStateTransitionError unless current → target is in the table."""
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(current.value, target.value, operation)


def _result(before: Optional[Asset], after: Asset) -> OperationResult:
    output: Dict[str, Any] = {"asset_id": after.asset_id, "status": after.status.value}
    if before is not None:
        output["previous_status"] = before.status.value
    return OperationResult(record=after, output=output)


def _moved(current: Asset, target: AssetStatus, operation: str, tx: TxContext) -> OperationResult:
    check_transition(current.status, target, operation)
    return _result(current, current.evolve(status=target, updated_at=tx.timestamp))


# =============================================================================
# OPERATIONS
# =============================================================================

def create(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    # deleted records keep their id; DELETED is terminal
    if current is not None:
        raise AlreadyExistsError(f"Asset {req.asset_id} already exists")
    asset = Asset.new(
        asset_id=req.asset_id,
        description=req.description or "",
        owner_fingerprint=tx.caller.fingerprint,
        created_by_label=tx.caller.org_label,
        required_approvals=req.required_approvals,
        timestamp=tx.timestamp,
    )
    return _result(None, asset)


def submit(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    asset = _require(current, req.asset_id)
    check_transition(asset.status, AssetStatus.PENDING_APPROVAL, Ops.SUBMIT)
    after = asset.evolve(
        status=AssetStatus.PENDING_APPROVAL,
        approvals=pending_approvals(asset.required_approvals),
        updated_at=tx.timestamp,
    )
    return _result(asset, after)


def approve(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    asset = _require(current, req.asset_id)
    if asset.status is not AssetStatus.PENDING_APPROVAL:
        raise InvalidStateTransitionError(asset.status.value, AssetStatus.APPROVED.value, Ops.APPROVE)

    role = tx.caller.role
    if asset.approvals.get(role) is True:
        raise AlreadyActedError(role, "approved")

    approvals = dict(asset.approvals)
    approvals[role] = True
    after = asset.evolve(approvals=approvals, updated_at=tx.timestamp)
    if after.all_approved():
        after = after.evolve(status=AssetStatus.APPROVED)

    result = _result(asset, after)
    result.output["approved_by"] = role
    result.output["pending"] = [
        r for r in after.required_approvals if after.approvals[r] is not True
    ]
    return result


def reject(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    asset = _require(current, req.asset_id)
    if asset.status is not AssetStatus.PENDING_APPROVAL:
        raise InvalidStateTransitionError(asset.status.value, AssetStatus.REJECTED.value, Ops.REJECT)

    role = tx.caller.role
    if asset.approvals.get(role) is True:
        raise AlreadyActedError(role, "approved")

    approvals = dict(asset.approvals)
    approvals[role] = Rejection(reason=req.reason or "", timestamp=tx.timestamp)
    after = asset.evolve(status=AssetStatus.REJECTED, approvals=approvals, updated_at=tx.timestamp)

    result = _result(asset, after)
    result.output["rejected_by"] = role
    return result


def activate(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    return _moved(_require(current, req.asset_id), AssetStatus.ACTIVE, Ops.ACTIVATE, tx)


def update(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    asset = _require(current, req.asset_id)
    if asset.status not in UPDATABLE:
        raise InvalidStateTransitionError(
            asset.status.value,
            asset.status.value,
            Ops.UPDATE,
            detail="description can only change in CREATED or REJECTED",
        )
    return _result(asset, asset.evolve(description=req.description, updated_at=tx.timestamp))


def delete(current: Optional[Asset], req: AssetRequest, tx: TxContext) -> OperationResult:
    return _moved(_require(current, req.asset_id), AssetStatus.DELETED, Ops.DELETE, tx)


OPERATIONS: Dict[str, Operation] = {
    Ops.CREATE: create,
    Ops.CREATE_WITH_PRIVATE_DATA: create,
    Ops.SUBMIT: submit,
    Ops.APPROVE: approve,
    Ops.REJECT: reject,
    Ops.ACTIVATE: activate,
    Ops.UPDATE: update,
    Ops.DELETE: delete,
}
