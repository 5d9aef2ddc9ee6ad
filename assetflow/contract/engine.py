"""
Contract Engine

Single entry point for every operation:

    engine.invoke(name, args, stub) -> output

Mutating operations run the fixed pipeline

    Validate input ─▶ Role check ─▶ Load record ─▶ Ownership / reviewer check
        ─▶ Transition check ─▶ Mutate (pure) ─▶ Persist to stub

and raise before any ``put_state`` when a step refuses. Queries stop after the
load. Operation names not in the dispatch table are denied.

The engine is stateless between calls: everything it needs is the injected
RolePolicy and limits, the stub and the caller identity the stub carries.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Sequence

from assetflow.contract.config import ContractConfig
from assetflow.contract.errors import AccessDeniedError, ContractError, NotFoundError, ValidationError
from assetflow.contract.ledger import TransactionStub
from assetflow.contract.observability import (
    Layer,
    configure_logging,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)
from assetflow.contract.policy import (
    OWNER_SCOPED_OPERATIONS,
    REVIEW_OPERATIONS,
    AccessPolicyEvaluator,
    Ops,
    RolePolicy,
)
from assetflow.contract.private_data import PrivateDataPartition
from assetflow.contract.state_machine import OPERATIONS, AssetRequest, TxContext
from assetflow.contract.validation import DEFAULT_LIMITS, Limits, Validators
from assetflow.contract import query

logger = get_logger("engine", Layer.ENGINE)

Handler = Callable[[str, Sequence[Any], TransactionStub], Any]

# name -> positional argument names
ARITY: Dict[str, Sequence[str]] = {
    Ops.CREATE: ("asset_id", "description"),
    Ops.CREATE_WITH_PRIVATE_DATA: ("asset_id", "description"),
    Ops.SUBMIT: ("asset_id",),
    Ops.APPROVE: ("asset_id",),
    Ops.REJECT: ("asset_id", "reason"),
    Ops.ACTIVATE: ("asset_id",),
    Ops.UPDATE: ("asset_id", "description"),
    Ops.DELETE: ("asset_id",),
    Ops.READ: ("asset_id",),
    Ops.EXISTS: ("asset_id",),
    Ops.QUERY_ALL: (),
    Ops.QUERY_BY_STATUS: ("status",),
    Ops.QUERY_BY_OWNER: ("owner_fingerprint",),
    Ops.HISTORY: ("asset_id",),
    Ops.READ_PRIVATE: ("asset_id",),
    Ops.CALLER_INFO: (),
}


class ContractEngine:
    """
    Deterministic asset-approval contract.

    Args:
        policy: operation → allowed-roles table and the role sets behind it
        limits: input length bounds
        collection: name of the private collection
        transient_key: transient map key carrying the confidential payload
    """

    def __init__(
        self,
        policy: Optional[RolePolicy] = None,
        limits: Limits = DEFAULT_LIMITS,
        collection: str = "assetPrivateDetails",
        transient_key: str = "asset_private_data",
    ):
        self.policy = policy or RolePolicy.build()
        self.limits = limits
        self.evaluator = AccessPolicyEvaluator(self.policy)
        self.private_data = PrivateDataPartition(self.evaluator, collection, transient_key)
        self._handlers: Dict[str, Handler] = {op: self._mutate for op in OPERATIONS}
        self._handlers.update({
            Ops.READ: self._read,
            Ops.EXISTS: self._exists,
            Ops.QUERY_ALL: self._query_all,
            Ops.QUERY_BY_STATUS: self._query_by_status,
            Ops.QUERY_BY_OWNER: self._query_by_owner,
            Ops.HISTORY: self._history,
            Ops.READ_PRIVATE: self._read_private,
            Ops.CALLER_INFO: self._caller_info,
        })

    @classmethod
    def from_config(cls, config: ContractConfig) -> "ContractEngine":
        configure_logging(
            config.observability.log_level.get(),
            config.observability.log_format.get(),
        )
        return cls(
            policy=RolePolicy.from_config(config),
            limits=Limits(
                asset_id_max_length=config.limits.asset_id_max_length.get(),
                description_max_length=config.limits.description_max_length.get(),
                reason_max_length=config.limits.reason_max_length.get(),
            ),
            collection=config.private_data.collection.get(),
            transient_key=config.private_data.transient_key.get(),
        )

    @property
    def operations(self) -> Sequence[str]:
        return tuple(self._handlers)

    def invoke(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Any:
        """Run one operation against stub. Raises ContractError on refusal."""
        token = set_correlation_id(stub.tx_id)
        start = time.monotonic()
        try:
            handler = self._handlers.get(function)
            if handler is None:
                raise AccessDeniedError(function, (), role=stub.caller.role, reason="unknown operation")
            self._check_arity(function, args)
            output = handler(function, args, stub)
        except ContractError as e:
            logger.warning(
                f"Operation {function} refused",
                operation=function,
                error_code=e.code,
                role=stub.caller.role,
                duration_ms=round((time.monotonic() - start) * 1000, 3),
            )
            raise
        else:
            logger.operation(
                function,
                (time.monotonic() - start) * 1000,
                role=stub.caller.role,
                org_label=stub.caller.org_label,
            )
            return output
        finally:
            reset_correlation_id(token)

    @staticmethod
    def _check_arity(function: str, args: Sequence[Any]) -> None:
        expected = ARITY[function]
        if len(args) != len(expected):
            names = ", ".join(expected) or "no arguments"
            raise ValidationError(
                "args",
                f"{function} expects {len(expected)} argument(s) ({names}), got {len(args)}",
            )

    # ------------------------------------------------------------------
    # mutating operations
    # ------------------------------------------------------------------

    def _request(self, function: str, args: Sequence[Any]) -> AssetRequest:
        asset_id = Validators.validate_asset_id(args[0], self.limits)
        if function in (Ops.CREATE, Ops.CREATE_WITH_PRIVATE_DATA):
            return AssetRequest(
                asset_id=asset_id,
                description=Validators.validate_description(args[1], self.limits),
                required_approvals=self.policy.required_approvals,
            )
        if function == Ops.UPDATE:
            return AssetRequest(
                asset_id=asset_id,
                description=Validators.validate_description(args[1], self.limits),
            )
        if function == Ops.REJECT:
            return AssetRequest(asset_id=asset_id, reason=Validators.validate_reason(args[1], self.limits))
        return AssetRequest(asset_id=asset_id)

    def _mutate(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Dict[str, Any]:
        caller = stub.caller
        req = self._request(function, args)

        private = None
        if function in (Ops.CREATE, Ops.CREATE_WITH_PRIVATE_DATA):
            private = self.private_data.record_from_transient(stub, req.asset_id)
            if private is None and function == Ops.CREATE_WITH_PRIVATE_DATA:
                raise ValidationError(
                    "private_data",
                    f"transient map must carry '{self.private_data.transient_key}'",
                )

        self.evaluator.require_role(function, caller)

        current = query.load_asset(stub, req.asset_id)
        if function in OWNER_SCOPED_OPERATIONS or function in REVIEW_OPERATIONS:
            if current is None:
                raise NotFoundError(f"Asset {req.asset_id} does not exist")
            if function in OWNER_SCOPED_OPERATIONS:
                self.evaluator.require_owner(function, caller, current)
            else:
                self.evaluator.require_reviewer_of(function, caller, current)

        ctx = TxContext(tx_id=stub.tx_id, timestamp=stub.timestamp.rfc3339(), caller=caller)
        result = OPERATIONS[function](current, req, ctx)

        stub.put_state(req.asset_id, result.record.to_bytes())
        if private is not None:
            self.private_data.write(stub, private)
            result.output["private_data"] = True
        return result.output

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def _read(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Dict[str, Any]:
        asset_id = Validators.validate_asset_id(args[0], self.limits)
        self.evaluator.require_role(function, stub.caller)
        return query.read_asset(stub, asset_id).to_dict()

    def _exists(self, function: str, args: Sequence[Any], stub: TransactionStub) -> bool:
        asset_id = Validators.validate_asset_id(args[0], self.limits)
        self.evaluator.require_role(function, stub.caller)
        return query.asset_exists(stub, asset_id)

    def _query_all(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Any:
        self.evaluator.require_role(function, stub.caller)
        return query.query_all(stub)

    def _query_by_status(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Any:
        status = Validators.validate_status_name(args[0])
        self.evaluator.require_role(function, stub.caller)
        return query.query_by_status(stub, status)

    def _query_by_owner(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Any:
        fingerprint = Validators.validate_fingerprint(args[0])
        self.evaluator.require_role(function, stub.caller)
        return query.query_by_owner(stub, fingerprint)

    def _history(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Any:
        asset_id = Validators.validate_asset_id(args[0], self.limits)
        self.evaluator.require_role(function, stub.caller)
        return query.history(stub, asset_id)

    def _read_private(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Dict[str, Any]:
        asset_id = Validators.validate_asset_id(args[0], self.limits)
        # existence before role; see PrivateDataPartition.read
        return self.private_data.read(stub, asset_id, query.load_asset(stub, asset_id))

    def _caller_info(self, function: str, args: Sequence[Any], stub: TransactionStub) -> Dict[str, Any]:
        self.evaluator.require_role(function, stub.caller)
        return query.caller_info(stub)
