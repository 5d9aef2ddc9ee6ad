"""
Private Data Partition

Confidential fields live in a separate collection keyed by the same asset id.
They arrive only through the transaction's transient map at creation time, so
they never appear in the public record, its history or the rich-query index.

Read ordering:

    1. public record exists (and is not deleted)?   no  → NotFoundError
    2. caller role in the private-access set?        no  → AccessDeniedError
    3. private record present on this peer?          no  → NotFoundError

Step 3 covers both "never written" and "not yet replicated here"; both raise
the same error.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from assetflow.contract.errors import NotFoundError
from assetflow.contract.ledger import TransactionStub
from assetflow.contract.model import Asset, PrivateAssetRecord
from assetflow.contract.observability import Layer, get_logger
from assetflow.contract.policy import AccessPolicyEvaluator, Ops
from assetflow.contract.validation import parse_private_payload

logger = get_logger("partition", Layer.PRIVATE_DATA)


class PrivateDataPartition:
    """Writes and gated reads of PrivateAssetRecord documents."""

    def __init__(
        self,
        evaluator: AccessPolicyEvaluator,
        collection: str = "assetPrivateDetails",
        transient_key: str = "asset_private_data",
    ):
        self.evaluator = evaluator
        self.collection = collection
        self.transient_key = transient_key

    def record_from_transient(self, stub: TransactionStub, asset_id: str) -> Optional[PrivateAssetRecord]:
        """Shape-check the transient payload, if any. Raises ValidationError."""
        shaped = parse_private_payload(stub.transient.get(self.transient_key))
        if shaped is None:
            return None
        return PrivateAssetRecord(
            asset_id=asset_id,
            confidential_notes=shaped["confidential_notes"],
            internal_value=shaped.get("internal_value"),
        )

    def write(self, stub: TransactionStub, record: PrivateAssetRecord) -> None:
        stub.put_private_data(self.collection, record.asset_id, record.to_bytes())
        logger.debug(
            "Private record staged",
            operation=Ops.CREATE_WITH_PRIVATE_DATA,
            asset_id=record.asset_id,
            collection=self.collection,
        )

    def read(self, stub: TransactionStub, asset_id: str, public: Optional[Asset]) -> Dict[str, Any]:
        if public is None or public.is_deleted:
            raise NotFoundError(f"Asset {asset_id} does not exist")

        self.evaluator.require_role(Ops.READ_PRIVATE, stub.caller)

        raw = stub.get_private_data(self.collection, asset_id)
        if not raw:
            raise NotFoundError(f"No private data found for asset {asset_id}")
        record = PrivateAssetRecord.from_bytes(raw)
        return record.to_dict()
