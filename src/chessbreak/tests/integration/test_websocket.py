"""Integration tests for the page bridge WebSocket and HTTP endpoints.

These drive the real Starlette app through the test client with MessagePack
frames, using in-memory storage areas in place of the data directory.
"""

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chessbreak.messaging.router import MessageRouter
from chessbreak.messaging.types import BridgeMessageType, SessionErrorCode
from chessbreak.server import websocket as ws_module
from chessbreak.server.app import create_app
from chessbreak.server.settings import BridgeSettings
from chessbreak.session.options_store import OptionsStore
from chessbreak.session.session_store import SessionStore
from chessbreak.tests.helpers.page import active_game_controls, added, chess_page, removed, result_panel
from chessbreak.tests.helpers.websocket import recv_until, recv_ws, send_ws
from shared.storage import StorageError


def _page_loaded(**page) -> dict:
    return {"type": "page_loaded", "url": "https://www.chess.com/play/online", "document": chess_page(**page).model_dump()}


def _mutations(records) -> dict:
    return {"type": "mutations", "records": [record.model_dump() for record in records]}


def _sync(ws) -> None:
    """Round-trip a ping so every earlier frame has been handled."""
    send_ws(ws, {"type": "ping"})
    recv_until(ws, BridgeMessageType.PONG)


@pytest.fixture
def router(options_storage, session_storage):
    return MessageRouter(OptionsStore(options_storage), SessionStore(session_storage), max_pages=4)


@pytest.fixture
def client(tmp_path, router):
    settings = BridgeSettings(data_dir=str(tmp_path / "data"), log_dir=str(tmp_path / "logs"), max_pages=4)
    app = create_app(settings=settings, message_router=router)
    with TestClient(app) as client:
        yield client


class TestWebSocketIntegration:
    def test_bridge_ready_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            ready = recv_ws(ws)
            assert ready["type"] == BridgeMessageType.BRIDGE_READY
            assert ready["marker"] == "cb-hidden"

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}

    def test_page_without_identity_is_closed(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            send_ws(ws, _page_loaded(username=None))

            error = recv_ws(ws)
            assert error["code"] == SessionErrorCode.IDENTITY_NOT_FOUND
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4001

    def test_loss_streak_lockout(self, client, session_storage):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            send_ws(ws, _page_loaded())
            for i in range(3):
                send_ws(ws, _mutations(added(active_game_controls())))
                send_ws(ws, _mutations(added(result_panel("Black Won", reason="on time", panel_id=f"p{i}"))))
                send_ws(ws, _mutations(removed(f"p{i}", "game-controls")))

            messages = recv_until(ws, "TILT_STARTED")
            marker = next(m for m in messages if m["type"] == BridgeMessageType.SET_MARKER)
            assert marker["node_ids"] == ["new-game-buttons", "new-game-tab"]
            assert marker["enabled"] is True
            assert messages[-1]["data"]["timeout"] == 300_000

            status = client.get("/status").json()
            assert status["connected_pages"] == 1
            assert status["active_lockouts"] == 1

        assert session_storage.snapshot()["chessBreakStreak"] == 3

    def test_clear_stats_over_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            send_ws(ws, _page_loaded())
            send_ws(ws, _mutations(added(active_game_controls())))
            send_ws(ws, _mutations(added(result_panel("White Won"))))
            _sync(ws)

            send_ws(ws, {"type": "CLEAR_STATS"})
            _sync(ws)

            assert client.get("/stats").json()["total_games"] == 1

    def test_invalid_msgpack_returns_error_and_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            ws.send_bytes(b"\xff\xff\xff")

            response = recv_ws(ws)
            assert response["type"] == BridgeMessageType.ERROR
            assert response["code"] == SessionErrorCode.INVALID_MESSAGE

            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws)["type"] == BridgeMessageType.PONG

    def test_repeated_decode_errors_disconnect(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            for _ in range(3):
                ws.send_bytes(b"\xff\xff\xff")
                recv_ws(ws)  # drain INVALID_MESSAGE error
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004

    def test_decode_error_counter_resets_on_valid_message(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            for _ in range(2):
                ws.send_bytes(b"\xff\xff\xff")
                recv_ws(ws)

            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws)["type"] == BridgeMessageType.PONG

            for _ in range(2):
                ws.send_bytes(b"\xff\xff\xff")
                assert recv_ws(ws)["code"] == SessionErrorCode.INVALID_MESSAGE

    def test_chess_page_origin_is_accepted(self, client):
        with client.websocket_connect("/ws", headers={"origin": "https://www.chess.com"}) as ws:
            assert recv_ws(ws)["type"] == BridgeMessageType.BRIDGE_READY

    def test_foreign_origin_is_rejected(self, client, router):
        with pytest.raises(WebSocketDisconnect) as exc_info, client.websocket_connect(
            "/ws",
            headers={"origin": "https://evil.example"},
        ):
            pass

        assert exc_info.value.code == ws_module.ORIGIN_REJECTED_CLOSE_CODE
        assert router.page_count == 0

    def test_disconnect_unregisters_page(self, client, router):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            send_ws(ws, _page_loaded())
            _sync(ws)
            assert client.get("/status").json()["connected_pages"] == 1

        assert router.page_count == 0


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "test"}

    def test_status_without_pages(self, client):
        data = client.get("/status").json()

        assert data["connected_pages"] == 0
        assert data["active_lockouts"] == 0
        assert data["max_pages"] == 4


class TestStatsEndpoint:
    def test_empty_history(self, client):
        data = client.get("/stats").json()

        assert data["total_games"] == 0
        assert data["peak_hours"] == []

    def test_reports_stored_history(self, client, session_storage):
        record = {
            "result": "loss",
            "timestamp": 1_700_000_000_000,
            "players": {"top": "bob", "bottom": "alice", "username": "alice"},
            "ratingChange": -8,
        }
        history = [record, {**record, "result": "win", "ratingChange": 6}]
        client.portal.call(session_storage.set, {"gameHistory": history, "totalTiltCount": 2})

        data = client.get("/stats").json()

        assert data["total_games"] == 2
        assert data["win_rate"] == 50.0
        assert data["average_rating_change"] == -1.0
        assert data["total_tilt_count"] == 2

    def test_storage_failure_returns_503(self, client, session_storage):
        with patch.object(session_storage, "get", side_effect=StorageError("unreadable")):
            response = client.get("/stats")

        assert response.status_code == 503
