"""Run the Loxone MCP server: python -m lox_mcp [--transport stdio|sse]."""

from lox_mcp.server import main

if __name__ == "__main__":
    main()
