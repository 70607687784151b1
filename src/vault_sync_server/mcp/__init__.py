"""MCP server exposing the sync engine over stdio."""
