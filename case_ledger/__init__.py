"""
Case Ledger - Multi-Party Case Workflow Service
===============================================

Coordinates a case record shared by police, prosecutors, judges and lawyers:
1. Forward-only procedural lifecycle (investigation -> prosecutorate -> court trial -> closed)
2. Stage-gated authorization for evidence, corrections, defense materials and objections
3. Tamper-evident artifact records anchored to an external ledger
4. Best-effort notification fan-out and operation audit
"""

__version__ = "1.0.0"
