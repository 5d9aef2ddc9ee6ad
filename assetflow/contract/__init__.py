"""
Asset Approval Contract

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │  engine.py         dispatch table, Validate → Policy → Load →       │
    │                    Transition → Mutate → Persist                    │
    │                                                                     │
    │  state_machine.py  pure operations over Asset records               │
    │  private_data.py   confidential sibling records, gated reads        │
    │  query.py          point reads, selector listings, history          │
    │  policy.py         role table + ownership checks                    │
    │  validation.py     syntactic input checks                           │
    │                                                                     │
    │  model.py          Asset, PrivateAssetRecord, transition table      │
    │  identity.py       CallerIdentity, certificate-backed provider      │
    │  ledger.py         TransactionStub + deterministic InMemoryLedger   │
    │  config.py         YAML + environment configuration                 │
    │  observability.py  structured logging                               │
    │  errors.py         error taxonomy                                   │
    └─────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Determinism: operations read time only from the transaction and never use
    randomness, so independent re-executions persist identical bytes.

    Fail Closed: unknown operations are denied. Ownership is checked by
    fingerprint, never by role or organization.

    Atomicity: every refusal is raised before the first write.
"""


def __getattr__(name):
    """Lazy import contract modules on first access."""

    if name in ("ContractEngine", "ARITY"):
        from assetflow.contract import engine
        return getattr(engine, name)

    if name in ("Asset", "AssetStatus", "PrivateAssetRecord", "Rejection", "TRANSITIONS"):
        from assetflow.contract import model
        return getattr(model, name)

    if name in ("CallerIdentity", "identity_from_certificate"):
        from assetflow.contract import identity
        return getattr(identity, name)

    if name in ("InMemoryLedger", "TransactionStub", "TxTimestamp", "PrivateCollection",
                "HistoryEntry", "CommitReceipt"):
        from assetflow.contract import ledger
        return getattr(ledger, name)

    if name in ("RolePolicy", "AccessPolicyEvaluator", "Ops", "ANY_ROLE"):
        from assetflow.contract import policy
        return getattr(policy, name)

    if name in ("ContractConfig", "ConfigError", "ConfigValidationError", "load_config"):
        from assetflow.contract import config
        return getattr(config, name)

    if name in ("ContractError", "ValidationError", "NotFoundError", "AlreadyExistsError",
                "AccessDeniedError", "InvalidStateTransitionError", "AlreadyActedError",
                "LedgerError", "MVCCConflictError", "CorruptRecordError"):
        from assetflow.contract import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'assetflow.contract' has no attribute '{name}'")
