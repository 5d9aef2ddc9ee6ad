"""
Ledger Collaborator

The engine never touches storage directly. Every operation runs against a
TransactionStub: the per-transaction view of the world state that the
surrounding ledger hands to the contract (ids, agreed time, caller, transient
payloads, key-value reads and writes, rich queries, per-key history and the
private partition).

InMemoryLedger is a deterministic reference implementation of that
collaborator used to exercise the engine:

    begin()   ──▶ TransactionStub ──▶ engine.invoke() ──▶ commit()
                  read set (key@version)                  MVCC check
                  write set (buffered)                    apply + history
                  private write set                       replicate

Nothing is applied until commit. A transaction whose read set is stale at
commit time is invalidated with MVCCConflictError and leaves no trace; the
caller resubmits. Consensus, ordering and transport are not modelled.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from assetflow.core import canonical_json_bytes, digest_json, rfc3339_from_epoch, sha256_bytes
from assetflow.contract.errors import LedgerError, MVCCConflictError
from assetflow.contract.identity import CallerIdentity
from assetflow.contract.observability import Layer, get_logger

logger = get_logger("ledger", Layer.LEDGER)

Selector = Mapping[str, Any]


@dataclass(frozen=True)
class TxTimestamp:
    """Transaction time agreed by the ordering service."""
    seconds: int
    nanos: int = 0

    def rfc3339(self) -> str:
        return rfc3339_from_epoch(self.seconds, self.nanos)


@dataclass(frozen=True)
class HistoryEntry:
    """One committed version of a key."""
    tx_id: str
    timestamp: str
    is_delete: bool
    value: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "tx_id": self.tx_id,
            "timestamp": self.timestamp,
            "is_delete": self.is_delete,
        }
        if self.value:
            d["value"] = json.loads(self.value.decode("utf-8"))
        return d


@dataclass(frozen=True)
class PrivateCollection:
    """A restricted partition replicated only to member organizations.

    An empty member set admits every organization.
    """
    name: str
    member_orgs: FrozenSet[str] = frozenset()

    def is_member(self, org_label: str) -> bool:
        return not self.member_orgs or org_label in self.member_orgs


class TransactionStub(ABC):
    """The contract's view of the ledger for a single transaction."""

    @property
    @abstractmethod
    def tx_id(self) -> str: ...

    @property
    @abstractmethod
    def timestamp(self) -> TxTimestamp: ...

    @property
    @abstractmethod
    def caller(self) -> CallerIdentity: ...

    @property
    @abstractmethod
    def transient(self) -> Mapping[str, bytes]: ...

    @abstractmethod
    def get_state(self, key: str) -> Optional[bytes]: ...

    @abstractmethod
    def put_state(self, key: str, value: bytes) -> None: ...

    @abstractmethod
    def get_query_result(self, selector: Selector) -> List[Tuple[str, bytes]]: ...

    @abstractmethod
    def get_history_for_key(self, key: str) -> List[HistoryEntry]: ...

    @abstractmethod
    def get_private_data(self, collection: str, key: str) -> Optional[bytes]: ...

    @abstractmethod
    def put_private_data(self, collection: str, key: str, value: bytes) -> None: ...


# =============================================================================
# SELECTORS
# =============================================================================

def selector_matches(selector: Selector, doc: Mapping[str, Any]) -> bool:
    """Evaluate a Mango-style selector subset: equality, $eq, $ne, $in."""
    for fld, cond in selector.items():
        present = fld in doc
        value = doc.get(fld)
        if isinstance(cond, Mapping):
            for op, operand in cond.items():
                if op == "$eq":
                    if not present or value != operand:
                        return False
                elif op == "$ne":
                    if present and value == operand:
                        return False
                elif op == "$in":
                    if not present or value not in operand:
                        return False
                else:
                    raise LedgerError(f"unsupported selector operator: {op}")
        elif not present or value != cond:
            return False
    return True


# =============================================================================
# IN-MEMORY REFERENCE LEDGER
# =============================================================================

@dataclass
class _Versioned:
    value: bytes
    version: int


@dataclass(frozen=True)
class CommitReceipt:
    """Result of a successful commit."""
    tx_id: str
    block_number: int
    timestamp: str
    keys_written: Tuple[str, ...]
    write_set_digest: str


class InMemoryTransaction(TransactionStub):
    """Buffered transaction against an InMemoryLedger snapshot."""

    def __init__(
        self,
        ledger: "InMemoryLedger",
        tx_id: str,
        timestamp: TxTimestamp,
        caller: CallerIdentity,
        transient: Optional[Mapping[str, bytes]] = None,
    ):
        self._ledger = ledger
        self._tx_id = tx_id
        self._timestamp = timestamp
        self._caller = caller
        self._transient = dict(transient or {})
        self.read_set: Dict[str, int] = {}
        self.write_set: Dict[str, bytes] = {}
        self.private_write_set: Dict[Tuple[str, str], bytes] = {}

    @property
    def tx_id(self) -> str:
        return self._tx_id

    @property
    def timestamp(self) -> TxTimestamp:
        return self._timestamp

    @property
    def caller(self) -> CallerIdentity:
        return self._caller

    @property
    def transient(self) -> Mapping[str, bytes]:
        return self._transient

    def get_state(self, key: str) -> Optional[bytes]:
        if key in self.write_set:
            return self.write_set[key]
        current = self._ledger._state.get(key)
        self.read_set.setdefault(key, current.version if current else 0)
        return current.value if current else None

    def put_state(self, key: str, value: bytes) -> None:
        if not key:
            raise LedgerError("empty key")
        if not isinstance(value, (bytes, bytearray)) or len(value) == 0:
            raise LedgerError(f"put_state({key}): value must be non-empty bytes")
        self.write_set[key] = bytes(value)

    def get_query_result(self, selector: Selector) -> List[Tuple[str, bytes]]:
        out: List[Tuple[str, bytes]] = []
        for key in sorted(self._ledger._state):
            raw = self._ledger._state[key].value
            try:
                doc = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                continue
            if isinstance(doc, dict) and selector_matches(selector, doc):
                out.append((key, raw))
        return out

    def get_history_for_key(self, key: str) -> List[HistoryEntry]:
        return list(self._ledger._history.get(key, []))

    def get_private_data(self, collection: str, key: str) -> Optional[bytes]:
        return self._ledger._read_private(collection, self._caller.org_label, key)

    def put_private_data(self, collection: str, key: str, value: bytes) -> None:
        if collection not in self._ledger.collections:
            raise LedgerError(f"unknown private collection: {collection}")
        if not isinstance(value, (bytes, bytearray)) or len(value) == 0:
            raise LedgerError(f"put_private_data({collection}/{key}): value must be non-empty bytes")
        self.private_write_set[(collection, key)] = bytes(value)


class InMemoryLedger:
    """
    Deterministic single-process ledger.

    Transaction ids and timestamps are derived from a sequence counter and a
    fixed genesis time, so two ledgers fed the same calls in the same order
    reach byte-identical states.
    """

    def __init__(
        self,
        collections: Sequence[PrivateCollection] = (PrivateCollection("assetPrivateDetails"),),
        genesis_seconds: int = 1_700_000_000,
        block_interval_seconds: int = 2,
        replicate_private: bool = True,
    ):
        self.collections: Dict[str, PrivateCollection] = {c.name: c for c in collections}
        self.genesis_seconds = genesis_seconds
        self.block_interval_seconds = block_interval_seconds
        self.replicate_private = replicate_private

        self._state: Dict[str, _Versioned] = {}
        self._history: Dict[str, List[HistoryEntry]] = {}
        # (collection, key) -> value, held by every member org
        self._private: Dict[Tuple[str, str], bytes] = {}
        # (collection, org_label) -> key -> value, endorsing org only
        self._private_local: Dict[Tuple[str, str], Dict[str, bytes]] = {}
        self._private_pending: List[Tuple[str, str, bytes]] = []
        self._tx_seq = 0
        self.height = 0

    # ------------------------------------------------------------------
    # transaction lifecycle
    # ------------------------------------------------------------------

    def begin(
        self,
        caller: CallerIdentity,
        function: str = "",
        args: Sequence[Any] = (),
        transient: Optional[Mapping[str, bytes]] = None,
        timestamp: Optional[TxTimestamp] = None,
    ) -> InMemoryTransaction:
        """Open a transaction for caller. Nothing is visible to others until commit."""
        self._tx_seq += 1
        if timestamp is None:
            timestamp = TxTimestamp(self.genesis_seconds + self._tx_seq * self.block_interval_seconds)
        tx_id = digest_json({
            "seq": self._tx_seq,
            "function": function,
            "args": [sha256_bytes(str(a).encode("utf-8", "surrogatepass")) for a in args],
            "creator": caller.fingerprint,
            "timestamp": [timestamp.seconds, timestamp.nanos],
        })
        return InMemoryTransaction(self, tx_id, timestamp, caller, transient)

    def commit(self, tx: InMemoryTransaction) -> CommitReceipt:
        """Validate the read set and apply the write sets atomically."""
        for key, read_version in sorted(tx.read_set.items()):
            current = self._state.get(key)
            current_version = current.version if current else 0
            if current_version != read_version:
                logger.warning(
                    "Transaction invalidated by MVCC read conflict",
                    operation="commit",
                    error_code="MVCC_READ_CONFLICT",
                    tx_id=tx.tx_id,
                    key=key,
                )
                raise MVCCConflictError(tx.tx_id, key, read_version, current_version)

        self.height += 1
        ts = tx.timestamp.rfc3339()
        for key in sorted(tx.write_set):
            value = tx.write_set[key]
            self._state[key] = _Versioned(value=value, version=self.height)
            self._history.setdefault(key, []).append(
                HistoryEntry(tx_id=tx.tx_id, timestamp=ts, is_delete=False, value=value)
            )

        for (collection, key), value in sorted(tx.private_write_set.items()):
            self._store_private(collection, tx.caller.org_label, key, value)

        logger.debug(
            "Transaction committed",
            operation="commit",
            tx_id=tx.tx_id,
            block_number=self.height,
            keys=len(tx.write_set),
        )
        return CommitReceipt(
            tx_id=tx.tx_id,
            block_number=self.height,
            timestamp=ts,
            keys_written=tuple(sorted(tx.write_set)),
            write_set_digest=digest_json({k: sha256_bytes(v) for k, v in tx.write_set.items()}),
        )

    def submit(
        self,
        invoke: Callable[[str, Sequence[Any], TransactionStub], Any],
        function: str,
        args: Sequence[Any],
        caller: CallerIdentity,
        transient: Optional[Mapping[str, bytes]] = None,
    ) -> Any:
        """Endorse with invoke, then commit. Errors raised by invoke leave no trace."""
        tx = self.begin(caller, function, args, transient)
        result = invoke(function, args, tx)
        self.commit(tx)
        return result

    def evaluate(
        self,
        invoke: Callable[[str, Sequence[Any], TransactionStub], Any],
        function: str,
        args: Sequence[Any],
        caller: CallerIdentity,
    ) -> Any:
        """Run a read-only invocation; the transaction is never committed."""
        tx = self.begin(caller, function, args)
        return invoke(function, args, tx)

    # ------------------------------------------------------------------
    # private partition
    # ------------------------------------------------------------------

    def _store_private(self, collection: str, endorsing_org: str, key: str, value: bytes) -> None:
        if self.replicate_private:
            self._private[(collection, key)] = value
            return
        # lagging: only the endorsing org holds the value until replication
        if self.collections[collection].is_member(endorsing_org):
            self._private_local.setdefault((collection, endorsing_org), {})[key] = value
        self._private_pending.append((collection, key, value))

    def _read_private(self, collection: str, org_label: str, key: str) -> Optional[bytes]:
        if collection not in self.collections:
            raise LedgerError(f"unknown private collection: {collection}")
        if not self.collections[collection].is_member(org_label):
            return None
        local = self._private_local.get((collection, org_label), {})
        if key in local:
            return local[key]
        return self._private.get((collection, key))

    def replicate_private_data(self) -> int:
        """Deliver pending private writes to every member organization."""
        pending, self._private_pending = self._private_pending, []
        for collection, key, value in pending:
            self._private[(collection, key)] = value
            for (coll, _org), local in self._private_local.items():
                if coll == collection:
                    local.pop(key, None)
        return len(pending)

    # ------------------------------------------------------------------
    # inspection
    # ------------------------------------------------------------------

    def version_of(self, key: str) -> int:
        current = self._state.get(key)
        return current.version if current else 0

    def raw_state(self, key: str) -> Optional[bytes]:
        current = self._state.get(key)
        return current.value if current else None

    def history(self, key: str) -> List[HistoryEntry]:
        return list(self._history.get(key, []))

    def state_root(self) -> str:
        """sha256 over the canonical map of key → sha256(value) for the public state."""
        return sha256_bytes(canonical_json_bytes(
            {k: sha256_bytes(v.value) for k, v in self._state.items()}
        ))
