"""Service layer shared by the MCP server: artifact context, cache, relationships."""
