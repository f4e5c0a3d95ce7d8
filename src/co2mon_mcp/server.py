"""MCP server entry point for USB CO2 monitors.

Exposes the device session as tools and resources via the Model Context
Protocol using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import Co2MonitorError
from .events import Event, EventType
from .models.device import PRODUCT_ID, VENDOR_ID, DeviceIdentity
from .storage.reading_log import ReadingLog
from .transport.usb_session import DeviceSession, SessionState

logger = logging.getLogger(__name__)

MAX_RECENT_ERRORS = 20

mcp = FastMCP(
    "co2-monitor",
    instructions="MCP server for USB CO2 / temperature / humidity monitors",
)

# Global session state
_session: DeviceSession | None = None
_recent_errors: deque[str] = deque(maxlen=MAX_RECENT_ERRORS)


def _get_session() -> DeviceSession:
    """Get the active session, raising if not polling."""
    if _session is None or _session.state is not SessionState.POLLING:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _session


def _remember_error(event: Event) -> None:
    _recent_errors.append(str(event.payload))


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    vendor_id: int = VENDOR_ID,
    product_id: int = PRODUCT_ID,
    log_dir: str | None = None,
) -> dict[str, Any]:
    """Connect to the CO2 monitor and start reading measurements.

    Args:
        vendor_id: USB vendor id (default 0x04D9).
        product_id: USB product id (default 0xA052).
        log_dir: Optional directory for daily reading logs.
    """
    global _session
    if _session is not None and _session.state is SessionState.POLLING:
        return {
            "connected": True,
            "message": "Already connected",
            "device": _session.identity.to_dict(),
        }

    try:
        identity = DeviceIdentity(vendor_id=vendor_id, product_id=product_id)
    except ValueError as e:
        return {"error": str(e)}

    session = DeviceSession(identity)
    session.subscribe(EventType.ERROR, _remember_error)
    if log_dir:
        ReadingLog(log_dir).attach(session)

    try:
        session.connect()
    except Co2MonitorError as e:
        return {"error": str(e)}

    try:
        session.transfer()
    except Co2MonitorError as e:
        session.disconnect()
        return {"error": str(e)}

    _session = session
    return {
        "connected": True,
        "device": identity.to_dict(),
        "logging_to": log_dir,
    }


@mcp.tool()
def disconnect() -> dict[str, Any]:
    """Stop polling and release the monitor."""
    global _session
    if _session is None:
        return {"disconnected": True}
    failures = _session.disconnect()
    _session = None
    return {"disconnected": True, "teardown_errors": [str(e) for e in failures]}


# ─── READING TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def get_readings() -> dict[str, Any]:
    """Latest temperature (°C), CO2 (ppm) and relative humidity (%).

    A value is null until the monitor has reported it at least once.
    """
    return _get_session().readings()


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Session state, device id and the most recent error messages."""
    if _session is None:
        return {"state": SessionState.DISCONNECTED.value, "errors": list(_recent_errors)}
    return {
        "state": _session.state.value,
        "device": _session.identity.to_dict(),
        "errors": list(_recent_errors),
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("co2mon://readings")
def resource_readings() -> str:
    """Latest readings as JSON."""
    if _session is None:
        return json.dumps({"readings": None})
    return json.dumps({"readings": _session.readings()})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    try:
        mcp.run(transport="stdio")
    finally:
        if _session is not None:
            _session.disconnect()


if __name__ == "__main__":
    main()
