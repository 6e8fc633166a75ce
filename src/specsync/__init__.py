"""Project document synchronization engine with an MCP editor surface."""

__version__ = "0.4.0"
