"""Tests for the MCP tool layer."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from co2mon_mcp.errors import DeviceNotFound, TeardownError, TransferFailed
from co2mon_mcp.events import Event, EventType
from co2mon_mcp.transport.usb_session import SessionState


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the decorators no-ops that return the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        sys.modules.pop("co2mon_mcp.server", None)
        import co2mon_mcp.server as server_mod

    return server_mod


def _mock_session(state=SessionState.POLLING):
    session = MagicMock()
    session.state = state
    session.readings.return_value = {"temperature": 21.5, "co2": 612, "humidity": None}
    return session


def test_connect_starts_transfer():
    server = _get_server_module()
    session = _mock_session()

    with patch.object(server, "DeviceSession", return_value=session) as cls:
        result = server.connect()

    assert result["connected"] is True
    assert result["device"] == {"vendor_id": "0x04d9", "product_id": "0xa052"}
    identity = cls.call_args.args[0]
    assert (identity.vendor_id, identity.product_id) == (0x04D9, 0xA052)
    session.connect.assert_called_once()
    session.transfer.assert_called_once()
    assert server._session is session


def test_connect_with_log_dir_attaches_sink(tmp_path):
    server = _get_server_module()
    session = _mock_session()

    with patch.object(server, "DeviceSession", return_value=session), \
            patch.object(server, "ReadingLog") as log_cls:
        result = server.connect(log_dir=str(tmp_path))

    log_cls.assert_called_once_with(str(tmp_path))
    log_cls.return_value.attach.assert_called_once_with(session)
    assert result["logging_to"] == str(tmp_path)


def test_connect_device_not_found():
    server = _get_server_module()
    session = _mock_session(SessionState.DISCONNECTED)
    session.connect.side_effect = DeviceNotFound("No CO2 monitor found with id 04d9:a052")

    with patch.object(server, "DeviceSession", return_value=session):
        result = server.connect()

    assert "No CO2 monitor found" in result["error"]
    session.transfer.assert_not_called()
    assert server._session is None


def test_connect_transfer_failure_disconnects():
    server = _get_server_module()
    session = _mock_session(SessionState.CONNECTED)
    session.transfer.side_effect = TransferFailed("Initial endpoint read failed")

    with patch.object(server, "DeviceSession", return_value=session):
        result = server.connect()

    assert "error" in result
    session.disconnect.assert_called_once()
    assert server._session is None


def test_connect_rejects_bad_identity():
    server = _get_server_module()
    result = server.connect(vendor_id=0x1FFFF)
    assert "error" in result


def test_get_readings_requires_connection():
    server = _get_server_module()
    with pytest.raises(RuntimeError, match="connect"):
        server.get_readings()


def test_get_readings():
    server = _get_server_module()
    server._session = _mock_session()
    assert server.get_readings() == {"temperature": 21.5, "co2": 612, "humidity": None}
    assert json.loads(server.resource_readings())["readings"]["co2"] == 612


def test_disconnect_reports_teardown_errors():
    server = _get_server_module()
    session = _mock_session()
    session.disconnect.return_value = [TeardownError("release_interface failed: busy")]
    server._session = session

    result = server.disconnect()

    assert result == {
        "disconnected": True,
        "teardown_errors": ["release_interface failed: busy"],
    }
    assert server._session is None


def test_status_collects_errors():
    server = _get_server_module()
    server._remember_error(Event(type=EventType.ERROR, payload=ValueError("Checksum mismatch")))
    status = server.get_status()
    assert status["state"] == "disconnected"
    assert status["errors"] == ["Checksum mismatch"]
