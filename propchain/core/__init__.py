"""Core Layer - pure domain rules, codecs and boundary contracts.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, db/ or models/
    - Everything except repository_protocols is synchronous and side-effect free
"""
