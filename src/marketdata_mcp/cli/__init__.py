"""JSON-first command line interface for marketdata-mcp."""
