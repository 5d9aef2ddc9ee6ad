"""
End-to-end contract scenarios through ContractEngine and InMemoryLedger.

Walkthroughs of the approval workflow come first. The invariant tests at the
bottom replay every committed version of a record from the ledger's
history and check the lifecycle rules on the whole sequence.
"""

import pytest

from assetflow.contract.errors import (
    AccessDeniedError,
    AlreadyActedError,
    AlreadyExistsError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from assetflow.contract.model import TRANSITIONS, AssetStatus


class TestScenarios:
    """Approval workflow walkthroughs."""

    def test_a_create(self, client, owner):
        out = client.submit(owner, "CreateAsset", "A1", "desc")
        assert out == {"asset_id": "A1", "status": "CREATED"}
        rec = client.read("A1")
        assert rec["status"] == "CREATED"
        assert rec["approvals"] == {"auditor": "PENDING", "regulator": "PENDING"}
        assert rec["owner_fingerprint"] == owner.fingerprint

    def test_b_full_approval(self, client, owner, auditor, regulator):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "ApproveAsset", "A1")
        assert client.read("A1")["status"] == "PENDING_APPROVAL"
        out = client.submit(regulator, "ApproveAsset", "A1")
        assert out["status"] == "APPROVED"
        assert client.read("A1")["status"] == "APPROVED"

    def test_c_single_rejection(self, client, owner, auditor):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "RejectAsset", "A1", "missing docs")
        rec = client.read("A1")
        assert rec["status"] == "REJECTED"
        assert rec["approvals"]["auditor"]["reason"] == "missing docs"
        assert rec["approvals"]["regulator"] == "PENDING"

    def test_d_fix_and_resubmit(self, client, owner, auditor):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "RejectAsset", "A1", "missing docs")
        client.submit(owner, "UpdateAsset", "A1", "fixed desc")
        client.submit(owner, "SubmitForApproval", "A1")

        rec = client.read("A1")
        assert rec["status"] == "PENDING_APPROVAL"
        assert rec["description"] == "fixed desc"
        assert rec["approvals"] == {"auditor": "PENDING", "regulator": "PENDING"}

        reasons = [
            e["value"]["approvals"]["auditor"].get("reason")
            for e in client.evaluate(owner, "GetAssetHistory", "A1")
            if isinstance(e["value"]["approvals"]["auditor"], dict)
        ]
        assert "missing docs" in reasons

    def test_e_no_delete_during_review(self, client, owner, ledger):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        height = ledger.height
        with pytest.raises(InvalidStateTransitionError):
            client.submit(owner, "DeleteAsset", "A1")
        assert client.read("A1")["status"] == "PENDING_APPROVAL"
        assert ledger.height == height

    def test_f_private_read_without_private_record(self, client, owner, auditor, regulator):
        client.submit(owner, "CreateAsset", "A1", "desc")
        with pytest.raises(NotFoundError):
            client.evaluate(auditor, "ReadPrivateData", "A1")
        with pytest.raises(AccessDeniedError):
            client.evaluate(regulator, "ReadPrivateData", "A1")


class TestRefusals:
    """Refusal paths through the full pipeline."""

    def test_reviewer_cannot_create(self, client, auditor):
        with pytest.raises(AccessDeniedError):
            client.submit(auditor, "CreateAsset", "A1", "desc")

    def test_duplicate_create(self, client, owner, other_owner):
        client.submit(owner, "CreateAsset", "A1", "desc")
        with pytest.raises(AlreadyExistsError):
            client.submit(other_owner, "CreateAsset", "A1", "hijack")
        assert client.read("A1")["description"] == "desc"

    @pytest.mark.parametrize("op,args", [
        ("SubmitForApproval", ()),
        ("UpdateAsset", ("mine now",)),
        ("DeleteAsset", ()),
    ])
    def test_ownership_isolation(self, client, owner, other_owner, op, args):
        client.submit(owner, "CreateAsset", "A1", "desc")
        with pytest.raises(AccessDeniedError) as exc:
            client.submit(other_owner, op, "A1", *args)
        assert owner.fingerprint not in str(exc.value)

    def test_activate_by_other_owner(self, client, owner, other_owner, auditor, regulator):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "ApproveAsset", "A1")
        client.submit(regulator, "ApproveAsset", "A1")
        with pytest.raises(AccessDeniedError):
            client.submit(other_owner, "ActivateAsset", "A1")
        client.submit(owner, "ActivateAsset", "A1")
        assert client.read("A1")["status"] == "ACTIVE"

    def test_ownership_checked_before_status(self, client, owner, other_owner):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        # owner gets the transition error, a stranger learns nothing about status
        with pytest.raises(InvalidStateTransitionError):
            client.submit(owner, "DeleteAsset", "A1")
        with pytest.raises(AccessDeniedError):
            client.submit(other_owner, "DeleteAsset", "A1")

    def test_double_approval_has_no_effect(self, client, owner, auditor, ledger):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "ApproveAsset", "A1")
        before = ledger.raw_state("A1")
        with pytest.raises(AlreadyActedError):
            client.submit(auditor, "ApproveAsset", "A1")
        assert ledger.raw_state("A1") == before

    def test_owner_cannot_approve(self, client, owner):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        with pytest.raises(AccessDeniedError):
            client.submit(owner, "ApproveAsset", "A1")

    def test_reject_requires_reason(self, client, owner, auditor):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        with pytest.raises(ValidationError):
            client.submit(auditor, "RejectAsset", "A1", "   ")
        with pytest.raises(ValidationError):
            client.submit(auditor, "RejectAsset", "A1", "r" * 501)

    def test_unencodable_text_is_a_validation_error(self, client, ledger, owner, auditor):
        with pytest.raises(ValidationError, match="not valid UTF-8"):
            client.submit(owner, "CreateAsset", "A1", "bad \ud800 desc")
        with pytest.raises(ValidationError, match="not valid UTF-8"):
            client.submit(owner, "CreateAssetWithPrivateData", "P1", "d",
                          private={"confidentialNotes": "\ud800"})
        assert ledger.history("A1") == []
        assert ledger.history("P1") == []

        client.submit(owner, "CreateAsset", "A2", "desc")
        client.submit(owner, "SubmitForApproval", "A2")
        with pytest.raises(ValidationError, match="not valid UTF-8"):
            client.submit(auditor, "RejectAsset", "A2", "reason \udfff")
        assert client.read("A2")["status"] == "PENDING_APPROVAL"

    def test_approve_unknown_asset(self, client, auditor):
        with pytest.raises(NotFoundError):
            client.submit(auditor, "ApproveAsset", "missing")

    def test_deleted_record_is_terminal(self, client, owner):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "DeleteAsset", "A1")
        with pytest.raises(NotFoundError):
            client.read("A1")
        for op, args in (("SubmitForApproval", ()), ("UpdateAsset", ("x",)), ("DeleteAsset", ())):
            with pytest.raises(InvalidStateTransitionError):
                client.submit(owner, op, "A1", *args)
        with pytest.raises(AlreadyExistsError):
            client.submit(owner, "CreateAsset", "A1", "again")

    def test_unknown_operation_denied(self, client, owner):
        with pytest.raises(AccessDeniedError, match="unknown operation"):
            client.submit(owner, "TransferAsset", "A1")

    def test_wrong_arity(self, client, owner):
        with pytest.raises(ValidationError, match="expects 2 argument"):
            client.submit(owner, "CreateAsset", "A1")

    def test_invalid_id_rejected_before_role_check(self, client, auditor):
        with pytest.raises(ValidationError):
            client.submit(auditor, "CreateAsset", "bad id", "desc")

    def test_error_to_dict(self, client, owner, auditor):
        client.submit(owner, "CreateAsset", "A1", "desc")
        with pytest.raises(AccessDeniedError) as exc:
            client.submit(auditor, "UpdateAsset", "A1", "x")
        d = exc.value.to_dict()
        assert d["code"] == "ACCESS_DENIED"
        assert d["operation"] == "UpdateAsset"
        assert d["allowed_roles"] == ["owner"]


class TestHistoryInvariants:
    """Lifecycle rules checked over complete committed histories."""

    def _walk(self, client, owner, auditor, regulator):
        client.submit(owner, "CreateAsset", "A1", "desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(auditor, "RejectAsset", "A1", "missing docs")
        client.submit(owner, "UpdateAsset", "A1", "fixed desc")
        client.submit(owner, "SubmitForApproval", "A1")
        client.submit(regulator, "ApproveAsset", "A1")
        client.submit(auditor, "ApproveAsset", "A1")
        client.submit(owner, "ActivateAsset", "A1")
        client.submit(owner, "DeleteAsset", "A1")
        return client.evaluate(owner, "GetAssetHistory", "A1")

    def test_one_entry_per_successful_mutation(self, client, owner, auditor, regulator):
        history = self._walk(client, owner, auditor, regulator)
        assert len(history) == 9
        assert len({e["tx_id"] for e in history}) == 9
        assert all(not e["is_delete"] for e in history)

    def test_every_observed_transition_is_in_the_table(self, client, owner, auditor, regulator):
        statuses = [AssetStatus(e["value"]["status"]) for e in self._walk(client, owner, auditor, regulator)]
        assert statuses[0] is AssetStatus.CREATED
        for prev, nxt in zip(statuses, statuses[1:]):
            assert prev == nxt or nxt in TRANSITIONS[prev]

    def test_approval_keys_always_match_required_set(self, client, owner, auditor, regulator):
        for e in self._walk(client, owner, auditor, regulator):
            v = e["value"]
            assert set(v["approvals"]) == set(v["required_approvals"]) == {"auditor", "regulator"}

    def test_approved_exactly_when_last_approval_recorded(self, client, owner, auditor, regulator):
        for e in self._walk(client, owner, auditor, regulator):
            v = e["value"]
            all_true = all(a is True for a in v["approvals"].values())
            if v["status"] == "PENDING_APPROVAL":
                assert not all_true
            if all_true and v["status"] in ("PENDING_APPROVAL", "APPROVED"):
                assert v["status"] == "APPROVED"

    def test_timestamps_come_from_transactions(self, client, owner, auditor, regulator):
        history = self._walk(client, owner, auditor, regulator)
        for e in history:
            assert e["value"]["updated_at"] == e["timestamp"]
        assert all(e["value"]["created_at"] == history[0]["timestamp"] for e in history)

    def test_refused_operations_leave_no_history(self, client, owner, other_owner):
        client.submit(owner, "CreateAsset", "A1", "desc")
        with pytest.raises(AccessDeniedError):
            client.submit(other_owner, "UpdateAsset", "A1", "x")
        with pytest.raises(InvalidStateTransitionError):
            client.submit(owner, "ActivateAsset", "A1")
        assert len(client.evaluate(owner, "GetAssetHistory", "A1")) == 1
