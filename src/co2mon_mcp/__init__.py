"""MCP server and driver for USB CO2/temperature/humidity monitors (04d9:a052)."""

__version__ = "0.1.0"
