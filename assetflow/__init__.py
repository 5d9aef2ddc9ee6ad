"""
assetflow: multi-party asset approval contract

A deterministic contract engine for asset records that must pass review by a
configurable set of roles before they become active, with confidential fields
kept in a restricted partition.

    core.py        hashing, canonical JSON, YAML/JSON loading
    schema.py      JSON Schema registry for record and config documents
    contract/      the engine, its policy and the ledger collaborator
"""

__version__ = "0.2.0"


def __getattr__(name):
    """Lazy re-exports from the contract subpackage."""
    if name in ("ContractEngine", "CallerIdentity", "InMemoryLedger", "RolePolicy",
                "ContractConfig", "load_config", "Ops"):
        from assetflow import contract
        return getattr(contract, name)

    raise AttributeError(f"module 'assetflow' has no attribute '{name}'")
