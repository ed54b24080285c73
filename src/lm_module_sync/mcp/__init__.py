"""MCP server layer for LogicModule synchronization."""
