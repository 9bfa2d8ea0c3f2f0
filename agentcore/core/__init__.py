"""Core Layer — pure domain types, events, errors and session state.

Invariants:
    - No module in core/ imports from services/, api/ or infrastructure/
    - No network IO; asyncio is used only by CancelSignal

Design Decisions:
    - Functional core separated from imperative shell
"""
