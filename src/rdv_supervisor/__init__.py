"""
rdv-supervisor — tool-container supervisor and attestation engine

File: src/rdv_supervisor/__init__.py

Purpose
- Package root. Wraps one tool process behind the rdv mount/environment contract
  and records what it consumed and produced in an attestation file.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
