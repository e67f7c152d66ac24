"""
Test suite for GameSession: player actions run end to end against a store.

Covers:
- Creating, joining and rejoining games
- Required-field checks and lookups by game code
- Who gets told about each action
- Retrying an action after a version conflict

Run with: pytest test_session.py -v
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from config import ServerConfig
from game import Card, GameError, GameState
from models.requests import (
    CompleteGameRequest,
    CreateGameRequest,
    DeckDefinition,
    JoinGameRequest,
    PlayCardRequest,
    RejoinGameRequest,
    SendMessageToPlayerRequest,
    SetCardyRequest,
    SetPlayerTurnRequest,
    StartGameRequest,
    TakeCardRequest,
)
from session import GameSession, create_game_code
from stores.game_store import (
    AmbiguousGameCodeError,
    ConcurrencyError,
    GameNotFoundError,
    MemoryGameStore,
)


class TickingClock:
    """Returns a time one second later on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FlakyStore(MemoryGameStore):
    """Memory store whose updates fail with a version conflict a set number of times."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.loads = 0

    async def load(self, game_code):
        self.loads += 1
        return await super().load(game_code)

    async def save(self, game, expected_version):
        if expected_version is not None and self.conflicts > 0:
            self.conflicts -= 1
            raise ConcurrencyError("simulated conflict")
        return await super().save(game, expected_version)


def make_session(store=None, clock=None) -> GameSession:
    return GameSession(
        store or MemoryGameStore(),
        ServerConfig(),
        rng=random.Random(7),
        clock=clock or TickingClock(),
    )


async def create(session: GameSession, game_id: str = "g1", **kwargs) -> str:
    request = CreateGameRequest(
        game_id=game_id,
        game_name="Friday game",
        username="anna",
        player_name="Anna",
        **kwargs,
    )
    deliveries = await session.create_game(request, "c-anna")
    return deliveries[0].message["game_code"]


async def seat_three(session: GameSession) -> str:
    code = await create(session)
    await session.join_game(JoinGameRequest(game_code=code, username="bo", player_name="Bo"), "c-bo")
    await session.join_game(JoinGameRequest(game_code=code, username="cy", player_name="Cy"), "c-cy")
    return code


async def rig(store: MemoryGameStore, code: str, hands: dict[str, list[str]], discard: str = "9H") -> None:
    """Replace the dealt hands with known cards."""
    game, version = await store.load(code)
    for hand in game.hands:
        hand.cards = [Card.from_token(t) for t in hands.get(hand.username, [])]
    top = Card.from_token(discard)
    game.get_deck("discard").cards = [top]
    game.current_rank, game.current_suit = top.rank, top.suit
    await store.save(game, version)


# =============================================================================
# Game codes
# =============================================================================

class TestCreateGameCode:

    def test_zero(self):
        assert create_game_code(0) == "AAAAAA"

    def test_least_significant_digit_first(self):
        assert create_game_code(1) == "BAAAAA"
        assert create_game_code(36) == "ABAAAA"

    def test_digits_after_letters(self):
        assert create_game_code(26) == "0AAAAA"
        assert create_game_code(35) == "9AAAAA"

    def test_only_lowest_digits_kept(self):
        assert create_game_code(36 ** 6 + 1) == "BAAAAA"

    def test_length(self):
        assert len(create_game_code(123456789)) == 6
        assert len(create_game_code(123456789, length=8)) == 8


# =============================================================================
# Creating and joining
# =============================================================================

class TestCreateGame:

    def setup_method(self):
        self.store = MemoryGameStore()
        self.clock = TickingClock()
        self.session = make_session(self.store, self.clock)

    @pytest.mark.asyncio
    async def test_creator_told_code(self):
        deliveries = await self.session.create_game(
            CreateGameRequest(game_id="g1", game_name="Friday game", username="anna", player_name="Anna"),
            "c-anna",
        )
        assert len(deliveries) == 1
        assert deliveries[0].connection_id == "c-anna"
        message = deliveries[0].message
        assert message["type"] == "game_created"
        assert message["game_id"] == "g1"

        seconds = int((self.clock.now - datetime(2000, 1, 1, tzinfo=timezone.utc)).total_seconds())
        assert message["game_code"] == create_game_code(seconds)

    @pytest.mark.asyncio
    async def test_stored_with_defaults(self):
        code = await create(self.session)
        game, version = await self.store.load(code)

        assert version == 1
        assert game.state == GameState.CREATED
        assert game.cards_to_deal == 7
        assert [d.id for d in game.decks] == ["pack", "discard"]
        assert game.players[0].is_admin
        assert game.players[0].connection_id == "c-anna"

    @pytest.mark.asyncio
    async def test_custom_decks_and_deal_size(self):
        code = await create(
            self.session,
            number_of_cards_to_deal=5,
            decks=[
                DeckDefinition(id="draw", initial_card_deck=True, can_drag_to_hand=True),
                DeckDefinition(id="play", is_face_up=True, can_drop_from_hand=True),
            ],
        )
        game, _ = await self.store.load(code)
        assert game.cards_to_deal == 5
        assert [d.id for d in game.decks] == ["draw", "play"]

    @pytest.mark.asyncio
    async def test_missing_field(self):
        with pytest.raises(GameError, match="CreateGameRequest.game_name must be supplied"):
            await self.session.create_game(
                CreateGameRequest(game_id="g1", username="anna", player_name="Anna"), "c-anna",
            )

    @pytest.mark.asyncio
    async def test_duplicate_deck_ids(self):
        with pytest.raises(GameError, match="different id"):
            await create(self.session, decks=[DeckDefinition(id="a"), DeckDefinition(id="a")])

    @pytest.mark.asyncio
    async def test_duplicate_game_id(self):
        await create(self.session, game_id="g1")
        with pytest.raises(GameError, match="A game with id g1 already exists."):
            await create(self.session, game_id="g1")


class TestJoinGame:

    def setup_method(self):
        self.store = MemoryGameStore()
        self.session = make_session(self.store)

    @pytest.mark.asyncio
    async def test_joiner_gets_game_others_get_notice(self):
        code = await create(self.session)
        deliveries = await self.session.join_game(
            JoinGameRequest(game_code=code.lower(), username="bo", player_name="Bo"), "c-bo",
        )

        assert [d.connection_id for d in deliveries] == ["c-bo", "c-anna"]
        assert deliveries[0].message["type"] == "full_game"
        assert deliveries[0].message["player_info"]["username"] == "bo"
        assert deliveries[1].message["type"] == "player_joined"
        assert deliveries[1].message["player"]["player_name"] == "Bo"

        game, version = await self.store.load(code)
        assert game.usernames() == ["anna", "bo"]
        assert version == 2

    @pytest.mark.asyncio
    async def test_duplicate_username(self):
        code = await create(self.session)
        with pytest.raises(GameError, match="already a player with that user-name"):
            await self.session.join_game(
                JoinGameRequest(game_code=code, username="ANNA", player_name="Other"), "c-x",
            )

    @pytest.mark.asyncio
    async def test_join_started_game(self):
        code = await seat_three(self.session)
        await self.session.start_game(StartGameRequest(game_code=code, username="anna"), "c-anna")
        with pytest.raises(GameError, match="already started"):
            await self.session.join_game(
                JoinGameRequest(game_code=code, username="di", player_name="Di"), "c-di",
            )

    @pytest.mark.asyncio
    async def test_unknown_code(self):
        with pytest.raises(GameNotFoundError, match="Game with code ZZZZZZ was not found."):
            await self.session.join_game(
                JoinGameRequest(game_code="ZZZZZZ", username="bo", player_name="Bo"), "c-bo",
            )

    @pytest.mark.asyncio
    async def test_missing_player_name(self):
        with pytest.raises(GameError, match="JoinGameRequest.player_name must be supplied"):
            await self.session.join_game(JoinGameRequest(game_code="ABCDEF", username="bo"), "c-bo")

    @pytest.mark.asyncio
    async def test_ambiguous_code(self):
        frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
        session = make_session(self.store, clock=lambda: frozen)
        code = await create(session, game_id="g1")
        assert await create(session, game_id="g2") == code

        with pytest.raises(AmbiguousGameCodeError, match=f"More than one game with code {code} was found."):
            await session.join_game(JoinGameRequest(game_code=code, username="bo", player_name="Bo"), "c-bo")


class TestRejoinGame:

    def setup_method(self):
        self.store = MemoryGameStore()
        self.session = make_session(self.store)

    @pytest.mark.asyncio
    async def test_rejoin_moves_connection(self):
        code = await seat_three(self.session)
        deliveries = await self.session.rejoin_game(RejoinGameRequest(game_code=code, username="bo"), "c-bo-2")
        assert [d.connection_id for d in deliveries] == ["c-bo-2"]
        assert deliveries[0].message["type"] == "full_game"

        deliveries = await self.session.start_game(StartGameRequest(game_code=code, username="anna"), "c-anna")
        assert [d.connection_id for d in deliveries] == ["c-anna", "c-bo-2", "c-cy"]

    @pytest.mark.asyncio
    async def test_rejoin_unknown_player(self):
        code = await create(self.session)
        with pytest.raises(GameError, match="There is no player with that user-name"):
            await self.session.rejoin_game(RejoinGameRequest(game_code=code, username="zed"), "c-zed")


# =============================================================================
# Play
# =============================================================================

class TestPlay:

    def setup_method(self):
        self.store = MemoryGameStore()
        self.session = make_session(self.store)

    async def started(self) -> str:
        code = await seat_three(self.session)
        await self.session.start_game(StartGameRequest(game_code=code, username="anna"), "c-anna")
        return code

    @pytest.mark.asyncio
    async def test_start_deals_private_hands(self):
        code = await seat_three(self.session)
        deliveries = await self.session.start_game(StartGameRequest(game_code=code, username="bo"), "c-bo")

        assert len(deliveries) == 3
        hands = [d.message["hand"] for d in deliveries]
        assert all(len(h) == 7 for h in hands)
        assert len(set(hands[0]) & set(hands[1])) == 0
        assert all(d.message["player_to_move_username"] == "anna" for d in deliveries)

        game, _ = await self.store.load(code)
        assert game.state == GameState.STARTED
        assert len(game.all_cards()) == 52

    @pytest.mark.asyncio
    async def test_play_card_updates_everyone(self):
        code = await self.started()
        await rig(self.store, code, {"anna": ["5H", "7D"], "bo": ["6H"], "cy": ["8S"]})

        deliveries = await self.session.play_card(
            PlayCardRequest(game_code=code, username="anna", card="5H"), "c-anna",
        )

        assert len(deliveries) == 3
        for delivery in deliveries:
            assert delivery.message["current_rank"] == "5"
            assert delivery.message["player_to_move_username"] == "bo"
            assert delivery.message["messages"][-1] == "Anna played the five of hearts."
        assert deliveries[0].message["hand"] == ["7D"]

    @pytest.mark.asyncio
    async def test_rejected_play_is_not_saved(self):
        code = await self.started()
        await rig(self.store, code, {"anna": ["7D"], "bo": ["6H"], "cy": ["8S"]})
        _, version = await self.store.load(code)

        with pytest.raises(GameError, match="Either a nine or a hearts must be played."):
            await self.session.play_card(PlayCardRequest(game_code=code, username="anna", card="7D"), "c-anna")

        game, after = await self.store.load(code)
        assert after == version
        assert [c.token for c in game.get_hand("anna").cards] == ["7D"]

    @pytest.mark.asyncio
    async def test_invalid_card_token(self):
        code = await self.started()
        with pytest.raises(GameError, match="The card 1H is not a valid card."):
            await self.session.play_card(PlayCardRequest(game_code=code, username="anna", card="1H"), "c-anna")

    @pytest.mark.asyncio
    async def test_missing_card(self):
        with pytest.raises(GameError, match="PlayCardRequest.card must be supplied"):
            await self.session.play_card(PlayCardRequest(game_code="ABCDEF", username="anna"), "c-anna")

    @pytest.mark.asyncio
    async def test_unknown_player(self):
        code = await self.started()
        with pytest.raises(GameError, match="The user zed was not found in the game."):
            await self.session.take_card(TakeCardRequest(game_code=code, username="zed", deck_id="pack"), "c-zed")

    @pytest.mark.asyncio
    async def test_set_player_turn_unknown_target(self):
        code = await self.started()
        with pytest.raises(GameError, match="The user you wish to set, zed, was not found in the game."):
            await self.session.set_player_turn(
                SetPlayerTurnRequest(
                    game_code=code, username="anna", player_to_set_username="zed", play_direction="Up",
                ),
                "c-anna",
            )

    @pytest.mark.asyncio
    async def test_cardy_win_ends_play(self):
        code = await self.started()
        await rig(self.store, code, {"anna": ["5H"], "bo": ["6H"], "cy": ["8S"]})

        await self.session.set_cardy(SetCardyRequest(game_code=code, username="anna", cardy=True), "c-anna")
        deliveries = await self.session.play_card(
            PlayCardRequest(game_code=code, username="anna", card="5H"), "c-anna",
        )

        assert all(d.message["winner_name"] == "Anna" for d in deliveries)
        assert deliveries[0].message["move_state"] == "GameWon"
        with pytest.raises(GameError, match="Anna has already won"):
            await self.session.play_card(PlayCardRequest(game_code=code, username="anna", card="6H"), "c-anna")

    @pytest.mark.asyncio
    async def test_complete_game(self):
        code = await self.started()
        deliveries = await self.session.complete_game(CompleteGameRequest(game_code=code, username="anna"), "c-anna")
        assert all(d.message["game_state"] == "Completed" for d in deliveries)


class TestSendMessage:

    def setup_method(self):
        self.store = MemoryGameStore()
        self.session = make_session(self.store)

    @pytest.mark.asyncio
    async def test_private_message_only_to_recipients(self):
        code = await seat_three(self.session)
        deliveries = await self.session.send_message_to_player(
            SendMessageToPlayerRequest(
                game_code=code, username="anna", message="psst", player_to_message_username="cy",
            ),
            "c-anna",
        )
        assert [d.connection_id for d in deliveries] == ["c-anna", "c-cy"]
        assert deliveries[1].message["messages"][-1] == "Message from Anna to Cy: psst"

    @pytest.mark.asyncio
    async def test_message_to_self_delivered_once(self):
        code = await seat_three(self.session)
        deliveries = await self.session.send_message_to_player(
            SendMessageToPlayerRequest(
                game_code=code, username="bo", message="note", player_to_message_username="bo",
            ),
            "c-bo",
        )
        assert [d.connection_id for d in deliveries] == ["c-bo"]

    @pytest.mark.asyncio
    async def test_table_message(self):
        code = await seat_three(self.session)
        deliveries = await self.session.send_message_to_player(
            SendMessageToPlayerRequest(game_code=code, username="bo", message="hi"), "c-bo",
        )
        assert len(deliveries) == 3


# =============================================================================
# Version conflicts
# =============================================================================

class TestRetry:

    @pytest.mark.asyncio
    async def test_conflict_retried_against_fresh_copy(self):
        store = FlakyStore(conflicts=0)
        session = make_session(store)
        code = await seat_three(session)
        await session.start_game(StartGameRequest(game_code=code, username="anna"), "c-anna")

        store.conflicts = 1
        store.loads = 0
        await session.set_cardy(SetCardyRequest(game_code=code, username="bo", cardy=True), "c-bo")

        assert store.loads == 2
        game, _ = await store.load(code)
        assert game.get_player("bo").cardy is True
        assert [m.content for m in game.messages].count("Bo is cardy!") == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_attempts(self):
        store = FlakyStore(conflicts=0)
        session = make_session(store)
        code = await seat_three(session)

        store.conflicts = 10
        store.loads = 0
        with pytest.raises(ConcurrencyError):
            await session.start_game(StartGameRequest(game_code=code, username="anna"), "c-anna")
        assert store.loads == ServerConfig().SAVE_RETRY_ATTEMPTS
