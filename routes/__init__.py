"""
HTTP routes served next to the MCP endpoint.
"""
