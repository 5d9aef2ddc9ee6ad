"""
Reference ledger tests: MVCC validation, atomic commit, selectors.
"""

import pytest

from assetflow.contract.errors import LedgerError, MVCCConflictError
from assetflow.contract.ledger import InMemoryLedger, TxTimestamp, selector_matches


class TestMVCC:
    """Two transactions racing on the same key."""

    def test_second_writer_is_invalidated(self, ledger, engine, owner, auditor, regulator):
        ledger.submit(engine.invoke, "CreateAsset", ["A1", "desc"], owner)
        ledger.submit(engine.invoke, "SubmitForApproval", ["A1"], owner)

        tx_a = ledger.begin(auditor, "ApproveAsset", ["A1"])
        tx_r = ledger.begin(regulator, "ApproveAsset", ["A1"])
        engine.invoke("ApproveAsset", ["A1"], tx_a)
        engine.invoke("ApproveAsset", ["A1"], tx_r)

        ledger.commit(tx_a)
        with pytest.raises(MVCCConflictError) as exc:
            ledger.commit(tx_r)
        assert exc.value.key == "A1"
        assert "MVCC_READ_CONFLICT" in str(exc.value)

        # the loser resubmits against fresh state
        out = ledger.submit(engine.invoke, "ApproveAsset", ["A1"], regulator)
        assert out["status"] == "APPROVED"

    def test_invalidated_tx_leaves_no_trace(self, ledger, engine, owner, other_owner):
        tx1 = ledger.begin(owner, "CreateAsset", ["A1", "mine"])
        tx2 = ledger.begin(other_owner, "CreateAsset", ["A1", "theirs"])
        engine.invoke("CreateAsset", ["A1", "mine"], tx1)
        engine.invoke("CreateAsset", ["A1", "theirs"], tx2)
        ledger.commit(tx1)
        height = ledger.height
        with pytest.raises(MVCCConflictError):
            ledger.commit(tx2)
        assert ledger.height == height
        assert len(ledger.history("A1")) == 1
        assert b"mine" in ledger.raw_state("A1")

    def test_disjoint_keys_do_not_conflict(self, ledger, engine, owner):
        tx1 = ledger.begin(owner, "CreateAsset", ["A1", "d"])
        tx2 = ledger.begin(owner, "CreateAsset", ["B2", "d"])
        engine.invoke("CreateAsset", ["A1", "d"], tx1)
        engine.invoke("CreateAsset", ["B2", "d"], tx2)
        ledger.commit(tx1)
        ledger.commit(tx2)
        assert ledger.version_of("A1") == 1
        assert ledger.version_of("B2") == 2


class TestStub:

    def test_writes_are_buffered_until_commit(self, ledger, owner):
        tx = ledger.begin(owner)
        tx.put_state("k", b'{"a":1}')
        assert tx.get_state("k") == b'{"a":1}'
        assert ledger.raw_state("k") is None
        receipt = ledger.commit(tx)
        assert ledger.raw_state("k") == b'{"a":1}'
        assert receipt.keys_written == ("k",)
        assert receipt.block_number == 1

    def test_empty_values_rejected(self, ledger, owner):
        tx = ledger.begin(owner)
        with pytest.raises(LedgerError):
            tx.put_state("k", b"")
        with pytest.raises(LedgerError):
            tx.put_private_data("nope", "k", b"x")

    def test_explicit_timestamp(self, ledger, owner):
        tx = ledger.begin(owner, timestamp=TxTimestamp(1700000000, 123_456_789))
        assert tx.timestamp.rfc3339() == "2023-11-14T22:13:20.123Z"

    def test_default_timestamps_advance(self, ledger, owner):
        first = ledger.begin(owner).timestamp
        second = ledger.begin(owner).timestamp
        assert second.seconds - first.seconds == ledger.block_interval_seconds

    def test_tx_ids_are_distinct(self, ledger, owner):
        assert ledger.begin(owner, "F", ["x"]).tx_id != ledger.begin(owner, "F", ["x"]).tx_id


class TestSelectors:

    DOC = {"doc_type": "asset", "status": "CREATED", "owner_fingerprint": "f1"}

    def test_equality(self):
        assert selector_matches({"doc_type": "asset"}, self.DOC)
        assert not selector_matches({"doc_type": "other"}, self.DOC)
        assert not selector_matches({"missing": "x"}, self.DOC)

    def test_operators(self):
        assert selector_matches({"status": {"$eq": "CREATED"}}, self.DOC)
        assert selector_matches({"status": {"$ne": "DELETED"}}, self.DOC)
        assert not selector_matches({"status": {"$ne": "CREATED"}}, self.DOC)
        assert selector_matches({"status": {"$in": ["CREATED", "ACTIVE"]}}, self.DOC)
        assert not selector_matches({"status": {"$in": ["ACTIVE"]}}, self.DOC)

    def test_unsupported_operator(self):
        with pytest.raises(LedgerError, match=r"\$regex"):
            selector_matches({"status": {"$regex": ".*"}}, self.DOC)

    def test_non_json_values_are_skipped(self, owner):
        ledger = InMemoryLedger()
        tx = ledger.begin(owner)
        tx.put_state("raw", b"\xff\xfe")
        tx.put_state("doc", b'{"doc_type":"asset"}')
        ledger.commit(tx)
        assert [k for k, _ in ledger.begin(owner).get_query_result({"doc_type": "asset"})] == ["doc"]
