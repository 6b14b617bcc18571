"""NAnt MCP Server - run NAnt builds via the Model Context Protocol."""

__version__ = "0.1.0"
