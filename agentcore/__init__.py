"""agentcore — LLM agent execution loop, provider abstraction and tool dispatch.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
