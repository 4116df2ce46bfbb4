"""push MCP server."""
