"""Infrastructure Layer — vendor LLM clients, MCP bridge and logging setup."""
