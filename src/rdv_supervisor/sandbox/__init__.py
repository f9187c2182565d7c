"""
rdv-supervisor — sandbox contract components

File: src/rdv_supervisor/sandbox/__init__.py

Purpose
- Contract validation, tree hashing, tool execution, product collection, and
  attestation for one supervised tool invocation.
"""

from rdv_supervisor.sandbox.attestation import (
    AttestationRecord,
    AttestationWriteError,
    build_attestation,
    write_attestation,
)
from rdv_supervisor.sandbox.contract import (
    ContractViolation,
    ContractViolationError,
    validate_contract,
)
from rdv_supervisor.sandbox.process_runner import (
    BinaryNotFound,
    NormalExit,
    SignaledExit,
    SpawnFailed,
    ToolBinary,
    discover_tool_binary,
    exit_code_for,
    run_tool,
)
from rdv_supervisor.sandbox.products import ProductRecord, collect_products
from rdv_supervisor.sandbox.tree_hasher import TreeHashError, hash_tree

__all__ = [
    "AttestationRecord",
    "AttestationWriteError",
    "BinaryNotFound",
    "ContractViolation",
    "ContractViolationError",
    "NormalExit",
    "ProductRecord",
    "SignaledExit",
    "SpawnFailed",
    "ToolBinary",
    "TreeHashError",
    "build_attestation",
    "collect_products",
    "discover_tool_binary",
    "exit_code_for",
    "hash_tree",
    "run_tool",
    "validate_contract",
]
