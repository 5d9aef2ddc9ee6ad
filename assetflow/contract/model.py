"""
Asset Records and Lifecycle Table

State Machine:

    CREATED ──────────▶ PENDING_APPROVAL ──────────▶ APPROVED ──────▶ ACTIVE
       │                   │        ▲                   │               │
       │                   ▼        │                   │               │
       │                 REJECTED ──┘                   │               │
       │                   │                            │               │
       ▼                   ▼                            ▼               ▼
    DELETED ◀──────────────┴────────────────────────────┴───────────────┘

DELETED is terminal. PENDING_APPROVAL cannot go straight to DELETED, so an
owner cannot cancel a review that is in progress.

Records are plain dataclasses with an explicit wire form (``to_dict`` /
``from_dict``). The wire form carries ``doc_type`` and ``schema_version`` and
is checked against ``schemas/*.v1.schema.json`` in both directions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from assetflow.core import canonical_json_bytes
from assetflow.contract.errors import CorruptRecordError
from assetflow.schema import validation_errors

ASSET_DOC_TYPE = "asset"
PRIVATE_DOC_TYPE = "asset_private"
ASSET_SCHEMA_VERSION = 1
PRIVATE_SCHEMA_VERSION = 1

ASSET_SCHEMA = "asset.v1.schema.json"
PRIVATE_SCHEMA = "private-asset.v1.schema.json"

PENDING = "PENDING"


class AssetStatus(Enum):
    """Lifecycle status of a public asset record."""
    CREATED = "CREATED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"

    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]

    def can_transition_to(self, target: "AssetStatus") -> bool:
        return target in TRANSITIONS[self]


TRANSITIONS: Dict[AssetStatus, FrozenSet[AssetStatus]] = {
    AssetStatus.CREATED: frozenset({AssetStatus.PENDING_APPROVAL, AssetStatus.DELETED}),
    AssetStatus.PENDING_APPROVAL: frozenset({AssetStatus.APPROVED, AssetStatus.REJECTED}),
    AssetStatus.APPROVED: frozenset({AssetStatus.ACTIVE, AssetStatus.DELETED}),
    AssetStatus.REJECTED: frozenset({AssetStatus.PENDING_APPROVAL, AssetStatus.DELETED}),
    AssetStatus.ACTIVE: frozenset({AssetStatus.DELETED}),
    AssetStatus.DELETED: frozenset(),
}


@dataclass(frozen=True)
class Rejection:
    """A reviewer's rejection, recorded under the reviewer's role."""
    reason: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason, "timestamp": self.timestamp}


# PENDING | True | Rejection
ApprovalValue = Union[str, bool, Rejection]


def _approval_to_wire(value: ApprovalValue) -> Any:
    if isinstance(value, Rejection):
        return value.to_dict()
    return value


def _approval_from_wire(value: Any) -> ApprovalValue:
    if isinstance(value, dict):
        return Rejection(reason=value["reason"], timestamp=value["timestamp"])
    return value


@dataclass(frozen=True)
class Asset:
    """
    The public asset record.

    ``owner_fingerprint`` identifies the creating caller and is the only field
    consulted by ownership checks. ``created_by_label`` is audit metadata and
    is never used for authorization.
    """
    asset_id: str
    description: str
    status: AssetStatus
    owner_fingerprint: str
    created_by_label: str
    required_approvals: Tuple[str, ...]
    approvals: Mapping[str, ApprovalValue]
    created_at: str
    updated_at: str

    @classmethod
    def new(
        cls,
        asset_id: str,
        description: str,
        owner_fingerprint: str,
        created_by_label: str,
        required_approvals: Tuple[str, ...],
        timestamp: str,
    ) -> "Asset":
        return cls(
            asset_id=asset_id,
            description=description,
            status=AssetStatus.CREATED,
            owner_fingerprint=owner_fingerprint,
            created_by_label=created_by_label,
            required_approvals=tuple(required_approvals),
            approvals=pending_approvals(required_approvals),
            created_at=timestamp,
            updated_at=timestamp,
        )

    @property
    def is_deleted(self) -> bool:
        return self.status is AssetStatus.DELETED

    def all_approved(self) -> bool:
        return all(self.approvals.get(role) is True for role in self.required_approvals)

    def evolve(self, **changes: Any) -> "Asset":
        """Return a copy with changes applied; records are never mutated in place."""
        if "approvals" in changes:
            changes["approvals"] = dict(changes["approvals"])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_type": ASSET_DOC_TYPE,
            "schema_version": ASSET_SCHEMA_VERSION,
            "asset_id": self.asset_id,
            "description": self.description,
            "status": self.status.value,
            "owner_fingerprint": self.owner_fingerprint,
            "created_by_label": self.created_by_label,
            "required_approvals": list(self.required_approvals),
            "approvals": {
                role: _approval_to_wire(self.approvals[role]) for role in self.required_approvals
            },
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_bytes(self) -> bytes:
        doc = self.to_dict()
        check_document(ASSET_SCHEMA, doc, self.asset_id)
        return canonical_json_bytes(doc)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Asset":
        key = str(doc.get("asset_id", "")) if isinstance(doc, Mapping) else ""
        check_document(ASSET_SCHEMA, doc, key)
        required = tuple(doc["required_approvals"])
        approvals = {role: _approval_from_wire(v) for role, v in doc["approvals"].items()}
        if set(approvals) != set(required):
            raise CorruptRecordError(
                f"asset {key}: approvals keys {sorted(approvals)} do not match "
                f"required_approvals {sorted(required)}"
            )
        return cls(
            asset_id=doc["asset_id"],
            description=doc["description"],
            status=AssetStatus(doc["status"]),
            owner_fingerprint=doc["owner_fingerprint"],
            created_by_label=doc["created_by_label"],
            required_approvals=required,
            approvals=approvals,
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Asset":
        return cls.from_dict(decode_document(raw))


@dataclass(frozen=True)
class PrivateAssetRecord:
    """Confidential sibling of an Asset, stored only in the private partition."""
    asset_id: str
    confidential_notes: str
    internal_value: Optional[Union[int, float]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "doc_type": PRIVATE_DOC_TYPE,
            "schema_version": PRIVATE_SCHEMA_VERSION,
            "asset_id": self.asset_id,
            "confidential_notes": self.confidential_notes,
        }
        if self.internal_value is not None:
            d["internal_value"] = self.internal_value
        return d

    def to_bytes(self) -> bytes:
        doc = self.to_dict()
        check_document(PRIVATE_SCHEMA, doc, self.asset_id)
        return canonical_json_bytes(doc)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PrivateAssetRecord":
        doc = decode_document(raw)
        check_document(PRIVATE_SCHEMA, doc, str(doc.get("asset_id", "")))
        return cls(
            asset_id=doc["asset_id"],
            confidential_notes=doc["confidential_notes"],
            internal_value=doc.get("internal_value"),
        )


def pending_approvals(required_approvals: Tuple[str, ...]) -> Dict[str, ApprovalValue]:
    return {role: PENDING for role in required_approvals}


def decode_document(raw: bytes) -> Dict[str, Any]:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptRecordError(f"stored document is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise CorruptRecordError("stored document is not a JSON object")
    return doc


def check_document(schema_name: str, doc: Any, key: str) -> None:
    errs = validation_errors(schema_name, doc)
    if errs:
        raise CorruptRecordError(f"{key or '<unknown>'}: {schema_name}: {errs[0]}")
