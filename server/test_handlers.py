"""
Test suite for WebSocket message handlers and connection delivery.

Tests handler flows and error reporting using mock WebSockets and an
in-memory game store.

Run with: pytest test_handlers.py -v
"""

import random

import pytest

from config import ServerConfig
from handlers import ConnectionContext, HANDLERS, dispatch_message
from services.connections import ConnectionManager
from session import Delivery, GameSession
from stores.game_store import MemoryGameStore


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self, fail: bool = False):
        self.messages: list[dict] = []
        self.fail = fail
        self.closed = False

    async def send_json(self, data: dict):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.messages.append(data)

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed = True

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


class Table:
    """A server's worth of state: session, connections and one socket per player."""

    def __init__(self):
        self.connections = ConnectionManager()
        self.session = GameSession(MemoryGameStore(), ServerConfig(), rng=random.Random(11))
        self.sockets: dict[str, MockWebSocket] = {}
        self.contexts: dict[str, ConnectionContext] = {}

    def connect(self, username: str) -> ConnectionContext:
        ws = MockWebSocket()
        connection_id = f"conn-{username}"
        self.connections.connect(connection_id, ws)
        self.sockets[username] = ws
        self.contexts[username] = ConnectionContext(websocket=ws, connection_id=connection_id)
        return self.contexts[username]

    async def send(self, username: str, data: dict) -> None:
        await dispatch_message(
            data,
            self.contexts[username],
            session=self.session,
            connections=self.connections,
        )


async def seated_table() -> tuple[Table, str]:
    table = Table()
    for username in ("anna", "bo"):
        table.connect(username)

    await table.send("anna", {
        "type": "create_game",
        "game_id": "g1",
        "game_name": "Friday game",
        "username": "anna",
        "player_name": "Anna",
    })
    code = table.sockets["anna"].last_message()["game_code"]
    await table.send("bo", {"type": "join_game", "game_code": code, "username": "bo", "player_name": "Bo"})
    return table, code


# =============================================================================
# Handler flows
# =============================================================================

class TestLobbyHandlers:

    def test_every_message_type_has_a_handler(self):
        assert set(HANDLERS) == {
            "create_game", "join_game", "rejoin_game", "change_player_position", "start_game",
            "play_card", "take_card", "choose_suit", "respond_to_jump", "set_cardy",
            "undo_last_move", "shuffle_and_move", "set_player_turn", "send_message_to_player",
            "complete_game",
        }

    @pytest.mark.asyncio
    async def test_create_game(self):
        table = Table()
        ctx = table.connect("anna")
        await table.send("anna", {
            "type": "create_game",
            "game_id": "g1",
            "game_name": "Friday game",
            "username": "anna",
            "player_name": "Anna",
        })

        message = table.sockets["anna"].last_message()
        assert message["type"] == "game_created"
        assert ctx.username == "anna"
        assert ctx.game_code == message["game_code"]

    @pytest.mark.asyncio
    async def test_join_notifies_existing_players(self):
        table, code = await seated_table()
        assert table.sockets["bo"].last_message()["type"] == "full_game"
        joined = table.sockets["anna"].messages_of_type("player_joined")
        assert joined[-1]["player"]["username"] == "bo"
        assert table.contexts["bo"].game_code == code

    @pytest.mark.asyncio
    async def test_start_game_sends_each_player_their_view(self):
        table, code = await seated_table()
        await table.send("anna", {"type": "start_game", "game_code": code, "username": "anna"})

        anna_view = table.sockets["anna"].last_message()
        bo_view = table.sockets["bo"].last_message()
        assert anna_view["type"] == bo_view["type"] == "full_game"
        assert anna_view["player_info"]["username"] == "anna"
        assert bo_view["player_info"]["username"] == "bo"
        assert anna_view["hand"] != bo_view["hand"]


# =============================================================================
# Error reporting
# =============================================================================

class TestErrors:

    @pytest.mark.asyncio
    async def test_unknown_message_type(self):
        table = Table()
        table.connect("anna")
        await table.send("anna", {"type": "fold"})
        assert table.sockets["anna"].last_message() == {"type": "error", "message": "Unknown message type: fold"}

    @pytest.mark.asyncio
    async def test_non_object_message(self):
        table = Table()
        table.connect("anna")
        await table.send("anna", ["play_card"])
        assert table.sockets["anna"].last_message()["type"] == "error"

    @pytest.mark.asyncio
    async def test_rule_violation_only_to_sender(self):
        table, code = await seated_table()
        await table.send("anna", {"type": "start_game", "game_code": code, "username": "anna"})
        before = len(table.sockets["anna"].messages)

        await table.send("bo", {"type": "take_card", "game_code": code, "username": "bo", "deck_id": "pack"})

        error = table.sockets["bo"].last_message()
        assert error["type"] == "error"
        assert "not your turn" in error["message"]
        assert error["game_code"] == code
        assert len(table.sockets["anna"].messages) == before

    @pytest.mark.asyncio
    async def test_missing_field(self):
        table, code = await seated_table()
        await table.send("anna", {"type": "play_card", "game_code": code, "username": "anna"})
        assert table.sockets["anna"].last_message()["message"] == "PlayCardRequest.card must be supplied"

    @pytest.mark.asyncio
    async def test_wrong_field_type(self):
        table, code = await seated_table()
        await table.send("anna", {"type": "play_card", "game_code": code, "username": "anna", "card": 5})
        message = table.sockets["anna"].last_message()
        assert message["type"] == "error"
        assert message["message"].startswith("card:")

    @pytest.mark.asyncio
    async def test_bad_suit_value(self):
        table, code = await seated_table()
        await table.send("anna", {"type": "choose_suit", "game_code": code, "username": "anna", "suit": "X"})
        assert table.sockets["anna"].last_message()["message"].startswith("suit:")

    @pytest.mark.asyncio
    async def test_unknown_game(self):
        table = Table()
        table.connect("bo")
        await table.send("bo", {"type": "rejoin_game", "game_code": "QQQQQQ", "username": "bo"})
        assert table.sockets["bo"].last_message()["message"] == "Game with code QQQQQQ was not found."

    @pytest.mark.asyncio
    async def test_unexpected_failure_keeps_connection(self):
        class BrokenSession:
            async def create_game(self, request, connection_id):
                raise KeyError("boom")

        table = Table()
        ctx = table.connect("anna")
        await dispatch_message(
            {"type": "create_game", "game_id": "g1", "game_name": "x", "username": "anna", "player_name": "A"},
            ctx,
            session=BrokenSession(),
            connections=table.connections,
        )
        message = table.sockets["anna"].last_message()
        assert message["type"] == "error"
        assert "boom" not in message["message"]


# =============================================================================
# Connection manager
# =============================================================================

class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_deliver_to_known_connections(self):
        manager = ConnectionManager()
        ws = MockWebSocket()
        manager.connect("c1", ws)

        sent = await manager.deliver([Delivery("c1", {"type": "a"}), Delivery("c1", {"type": "b"})])

        assert sent == 2
        assert [m["type"] for m in ws.messages] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unknown_connection_skipped(self):
        manager = ConnectionManager()
        assert await manager.send("gone", {"type": "a"}) is False
        assert await manager.send(None, {"type": "a"}) is False

    @pytest.mark.asyncio
    async def test_failed_send_prunes_connection(self):
        manager = ConnectionManager()
        manager.connect("c1", MockWebSocket(fail=True))
        ok = MockWebSocket()
        manager.connect("c2", ok)

        sent = await manager.deliver([Delivery("c1", {"type": "a"}), Delivery("c2", {"type": "a"})])

        assert sent == 1
        assert manager.get("c1") is None
        assert len(manager) == 1
        assert ok.messages == [{"type": "a"}]

    @pytest.mark.asyncio
    async def test_close_all(self):
        manager = ConnectionManager()
        ws = MockWebSocket()
        manager.connect("c1", ws)
        await manager.close_all()
        assert ws.closed
        assert len(manager) == 0
