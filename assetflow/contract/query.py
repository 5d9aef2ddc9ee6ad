"""
History / Query surface.

Read-only projections over the ledger collaborator: point lookups, selector
listings and per-key history. Nothing here writes, so queries can never
observe or produce partial state.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from assetflow.contract.errors import CorruptRecordError, NotFoundError
from assetflow.contract.ledger import Selector, TransactionStub
from assetflow.contract.model import ASSET_DOC_TYPE, Asset, AssetStatus
from assetflow.contract.observability import Layer, get_logger

logger = get_logger("query", Layer.ENGINE)

NOT_DELETED = {"$ne": AssetStatus.DELETED.value}


def load_asset(stub: TransactionStub, asset_id: str) -> Optional[Asset]:
    """Current record for asset_id, deleted or not; None if the id was never used."""
    raw = stub.get_state(asset_id)
    if not raw:
        return None
    return Asset.from_bytes(raw)


def read_asset(stub: TransactionStub, asset_id: str) -> Asset:
    asset = load_asset(stub, asset_id)
    if asset is None or asset.is_deleted:
        raise NotFoundError(f"Asset {asset_id} does not exist")
    return asset


def asset_exists(stub: TransactionStub, asset_id: str) -> bool:
    """True iff a non-deleted record decodes under asset_id.

    A record that fails to decode counts as absent here. Every other read
    still raises CorruptRecordError for it.
    """
    try:
        asset = load_asset(stub, asset_id)
    except CorruptRecordError:
        logger.warning(
            "Corrupt asset record treated as absent",
            operation="AssetExists",
            error_code="CORRUPT_RECORD",
            asset_id=asset_id,
        )
        return False
    return asset is not None and not asset.is_deleted


def select_assets(stub: TransactionStub, selector: Selector) -> List[Dict[str, Any]]:
    """Run selector against asset documents, returned in key order."""
    full = {"doc_type": ASSET_DOC_TYPE}
    full.update(selector)
    return [Asset.from_bytes(raw).to_dict() for _, raw in stub.get_query_result(full)]


def query_all(stub: TransactionStub) -> List[Dict[str, Any]]:
    return select_assets(stub, {"status": NOT_DELETED})


def query_by_status(stub: TransactionStub, status: str) -> List[Dict[str, Any]]:
    return select_assets(stub, {"status": status})


def query_by_owner(stub: TransactionStub, owner_fingerprint: str) -> List[Dict[str, Any]]:
    return select_assets(stub, {"owner_fingerprint": owner_fingerprint, "status": NOT_DELETED})


def history(stub: TransactionStub, asset_id: str) -> List[Dict[str, Any]]:
    """Every committed version of asset_id, oldest first. Unknown ids yield []."""
    return [entry.to_dict() for entry in stub.get_history_for_key(asset_id)]


def caller_info(stub: TransactionStub) -> Dict[str, Any]:
    return stub.caller.to_dict()
