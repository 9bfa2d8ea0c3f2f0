"""Services Layer — agent loop, tool dispatch, tool handlers and collaborators.

Invariants:
    - Tool registration uses explicit define_*/handle_* pairs (no auto-discovery)
    - Handlers never raise for expected failures; dispatch converts errors to results
"""
