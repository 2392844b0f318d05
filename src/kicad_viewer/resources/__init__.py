"""MCP resource registrations."""
