"""MCP server exposing Gemara authoring tools."""
