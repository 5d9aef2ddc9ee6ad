"""
Access Policy Evaluation

Two independent checks compose:

    Role check       operation → allowed role set, from the RolePolicy table.
                     "*" admits any authenticated role.
    Ownership check  for owner-scoped operations the caller's fingerprint must
                     equal the record's owner_fingerprint. Passing the role
                     check is never sufficient on its own.

The table is built from configuration only. Operations missing from the table
are denied (fail closed).
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from assetflow.contract.config import ContractConfig
from assetflow.contract.errors import AccessDeniedError
from assetflow.contract.identity import CallerIdentity
from assetflow.contract.model import Asset

ANY_ROLE = "*"


class Ops:
    """Contract operation names, as exposed by the dispatch table."""
    CREATE = "CreateAsset"
    CREATE_WITH_PRIVATE_DATA = "CreateAssetWithPrivateData"
    SUBMIT = "SubmitForApproval"
    APPROVE = "ApproveAsset"
    REJECT = "RejectAsset"
    ACTIVATE = "ActivateAsset"
    UPDATE = "UpdateAsset"
    DELETE = "DeleteAsset"
    READ = "ReadAsset"
    EXISTS = "AssetExists"
    QUERY_ALL = "QueryAllAssets"
    QUERY_BY_STATUS = "QueryAssetsByStatus"
    QUERY_BY_OWNER = "QueryAssetsByOwner"
    HISTORY = "GetAssetHistory"
    READ_PRIVATE = "ReadPrivateData"
    CALLER_INFO = "GetCallerInfo"

    @classmethod
    def all(cls) -> FrozenSet[str]:
        return frozenset(v for k, v in vars(cls).items() if k.isupper())


OWNER_OPERATIONS = (Ops.CREATE, Ops.CREATE_WITH_PRIVATE_DATA)
OWNER_SCOPED_OPERATIONS: FrozenSet[str] = frozenset({
    Ops.SUBMIT,
    Ops.ACTIVATE,
    Ops.UPDATE,
    Ops.DELETE,
})
REVIEW_OPERATIONS = (Ops.APPROVE, Ops.REJECT)
QUERY_OPERATIONS = (
    Ops.READ,
    Ops.EXISTS,
    Ops.QUERY_ALL,
    Ops.QUERY_BY_STATUS,
    Ops.QUERY_BY_OWNER,
    Ops.HISTORY,
    Ops.CALLER_INFO,
)


@dataclass(frozen=True)
class RolePolicy:
    """Immutable operation → allowed-roles table plus the role sets it was built from."""
    required_approvals: Tuple[str, ...]
    owner_roles: Tuple[str, ...]
    private_access_roles: Tuple[str, ...]
    table: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        required_approvals: Tuple[str, ...] = ("auditor", "regulator"),
        owner_roles: Tuple[str, ...] = ("owner",),
        private_access_roles: Tuple[str, ...] = ("owner", "auditor"),
        overrides: Optional[Mapping[str, Tuple[str, ...]]] = None,
    ) -> "RolePolicy":
        table: Dict[str, Tuple[str, ...]] = {}
        for op in OWNER_OPERATIONS:
            table[op] = tuple(owner_roles)
        for op in OWNER_SCOPED_OPERATIONS:
            table[op] = tuple(owner_roles)
        for op in REVIEW_OPERATIONS:
            table[op] = tuple(required_approvals)
        for op in QUERY_OPERATIONS:
            table[op] = (ANY_ROLE,)
        table[Ops.READ_PRIVATE] = tuple(private_access_roles)

        for op, roles in (overrides or {}).items():
            table[op] = tuple(roles)

        return cls(
            required_approvals=tuple(required_approvals),
            owner_roles=tuple(owner_roles),
            private_access_roles=tuple(private_access_roles),
            table=table,
        )

    @classmethod
    def from_config(cls, config: ContractConfig) -> "RolePolicy":
        p = config.policy
        return cls.build(
            required_approvals=tuple(p.required_approvals.get()),
            owner_roles=tuple(p.owner_roles.get()),
            private_access_roles=tuple(p.private_access_roles.get()),
            overrides={op: tuple(roles) for op, roles in p.operations.items()},
        )

    def allowed_roles(self, operation: str) -> Tuple[str, ...]:
        return self.table.get(operation, ())


def _same_fingerprint(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class AccessPolicyEvaluator:
    """Evaluates role and ownership checks against a RolePolicy."""

    def __init__(self, policy: RolePolicy):
        self.policy = policy

    def role_allowed(self, operation: str, role: str) -> bool:
        allowed = self.policy.allowed_roles(operation)
        return ANY_ROLE in allowed or role in allowed

    def require_role(self, operation: str, caller: CallerIdentity) -> None:
        """Raise AccessDeniedError unless the caller's role may invoke operation."""
        if not self.role_allowed(operation, caller.role):
            raise AccessDeniedError(operation, self.policy.allowed_roles(operation), role=caller.role)

    def require_owner(self, operation: str, caller: CallerIdentity, asset: Asset) -> None:
        """Raise AccessDeniedError unless the caller created asset.

        The message names only the rule that failed, never the owner.
        """
        if not _same_fingerprint(caller.fingerprint, asset.owner_fingerprint):
            raise AccessDeniedError(
                operation,
                self.policy.allowed_roles(operation),
                role=caller.role,
                reason="only the asset owner may perform this operation",
            )

    def require_reviewer_of(self, operation: str, caller: CallerIdentity, asset: Asset) -> None:
        """The caller's role must be one the record itself requires.

        Records keep the required-approval set captured at creation, so a role
        added to the deployment later cannot vote on older records.
        """
        if caller.role not in asset.required_approvals:
            raise AccessDeniedError(operation, asset.required_approvals, role=caller.role)
