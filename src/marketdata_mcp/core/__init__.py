"""Core governor, provider and infrastructure modules for marketdata-mcp."""
