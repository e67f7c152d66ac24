"""
Session orchestration for Cardy.

GameSession runs one player action end to end: check the request, load
the game by code, apply the rules, save the game back at the version it
was loaded at, and work out who needs to hear about it. Every action
returns a list of Delivery objects, one message per recipient
connection; sending them is left to the caller.

If the save hits a version conflict, the whole action is run again
against a fresh copy of the game, up to SAVE_RETRY_ATTEMPTS times.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import rules
import views
from config import ServerConfig
from constants import (
    DEFAULT_DECK_DEFINITIONS,
    GAME_CODE_ALPHABET,
    GAME_CODE_EPOCH_YEAR,
    GAME_CODE_LENGTH,
)
from game import Card, Deck, Game, GameError, GameState, Player
from logging_config import game_code_var, username_var
from models.requests import (
    ActionRequest,
    ChangePlayerPositionRequest,
    ChooseSuitRequest,
    CompleteGameRequest,
    CreateGameRequest,
    DeckDefinition,
    JoinGameRequest,
    PlayCardRequest,
    RejoinGameRequest,
    RespondToJumpRequest,
    SendMessageToPlayerRequest,
    SetCardyRequest,
    SetPlayerTurnRequest,
    ShuffleAndMoveRequest,
    StartGameRequest,
    TakeCardRequest,
    UndoLastMoveRequest,
)
from stores.game_store import ConcurrencyError, GameStore

logger = logging.getLogger(__name__)

GAME_CODE_EPOCH = datetime(GAME_CODE_EPOCH_YEAR, 1, 1, tzinfo=timezone.utc)


@dataclass
class Delivery:
    """One message for one connection. connection_id is None for a player who never connected."""

    connection_id: Optional[str]
    message: dict


def create_game_code(seconds: int, length: int = GAME_CODE_LENGTH) -> str:
    """
    Encode a seconds counter as a game code.

    The counter is written in base 36, least significant digit first,
    with digits 0-25 as A-Z and 26-35 as 0-9. Only the lowest `length`
    digits are kept.

    Args:
        seconds: Seconds since 2000-01-01 UTC.
        length: Number of characters.

    Returns:
        Uppercase code, e.g. "ABCD12".
    """
    chars = []
    for _ in range(length):
        seconds, digit = divmod(seconds, len(GAME_CODE_ALPHABET))
        chars.append(GAME_CODE_ALPHABET[digit])
    return "".join(chars)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GameSession:
    """
    Runs player actions against stored games.

    Args:
        store: Where games are loaded from and saved to.
        config: Server configuration (retry count, default deal size).
        rng: Random source for shuffles. Pass a seeded one for reproducible games.
        clock: Returns the current UTC time, used for game codes.
    """

    def __init__(
        self,
        store: GameStore,
        config: ServerConfig,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.config = config
        self.rng = rng or random.Random()
        self.clock = clock

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _run(
        self,
        request: ActionRequest,
        action: Callable[[Game], list[Delivery]],
    ) -> list[Delivery]:
        """Load, apply and save, retrying the whole action on a version conflict."""
        request.require()
        username_var.set(request.username)
        game_code_var.set(request.game_code.upper())

        attempts = self.config.SAVE_RETRY_ATTEMPTS
        for attempt in range(1, attempts + 1):
            game, version = await self.store.load(request.game_code)
            deliveries = action(game)
            try:
                await self.store.save(game, version)
            except ConcurrencyError:
                if attempt >= attempts:
                    logger.warning(f"Giving up on {type(request).__name__} after {attempt} conflicting saves")
                    raise
                logger.warning(f"Version conflict on {type(request).__name__}, retrying ({attempt}/{attempts})")
                continue
            return deliveries

        raise ConcurrencyError(f"Could not save game {request.game_code}")

    @staticmethod
    def _acting_player(
        game: Game,
        username: str,
        connection_id: str,
        message: Optional[str] = None,
    ) -> Player:
        """Find the player making the request and record where they are connected from."""
        player = rules.require_player(game, username, message)
        player.connection_id = connection_id
        return player

    @staticmethod
    def _to_all(game: Game) -> list[Delivery]:
        return [Delivery(p.connection_id, views.build_game_view(game, p)) for p in game.players]

    @staticmethod
    def _to_usernames(game: Game, usernames: list[str]) -> list[Delivery]:
        deliveries = []
        seen = set()
        for username in usernames:
            player = game.get_player(username)
            if player is not None and player.username not in seen:
                seen.add(player.username)
                deliveries.append(Delivery(player.connection_id, views.build_game_view(game, player)))
        return deliveries

    @staticmethod
    def _parse_card(token: str) -> Card:
        try:
            return Card.from_token(token)
        except ValueError:
            raise GameError(f"The card {token} is not a valid card.") from None

    # -------------------------------------------------------------------------
    # Joining
    # -------------------------------------------------------------------------

    async def create_game(self, request: CreateGameRequest, connection_id: str) -> list[Delivery]:
        """
        Create a new game with the requesting player as its admin.

        Only the creator is told about it; the reply carries the game code
        the others need to join.
        """
        request.require()
        username_var.set(request.username)

        definitions = request.decks or [DeckDefinition(**d) for d in DEFAULT_DECK_DEFINITIONS]
        deck_ids = [d.id for d in definitions]
        if len(set(deck_ids)) != len(deck_ids):
            raise GameError("Each deck must have a different id.")

        cards_to_deal = request.number_of_cards_to_deal
        if cards_to_deal is None:
            cards_to_deal = self.config.DEFAULT_CARDS_TO_DEAL

        seconds = int((self.clock() - GAME_CODE_EPOCH).total_seconds())
        game = Game.new(
            code=create_game_code(seconds, self.config.GAME_CODE_LENGTH),
            name=request.game_name,
            game_id=request.game_id,
            cards_to_deal=cards_to_deal,
            players=[Player(
                username=request.username,
                player_name=request.player_name,
                is_admin=True,
                connection_id=connection_id,
            )],
            decks=[Deck(**d.model_dump()) for d in definitions],
        )
        game_code_var.set(game.code)

        try:
            await self.store.save(game, None)
        except ConcurrencyError:
            raise GameError(f"A game with id {request.game_id} already exists.") from None

        logger.info(f"Created game {game.code} ({game.id}) for {request.username}")
        return [Delivery(connection_id, views.game_created(game))]

    async def join_game(self, request: JoinGameRequest, connection_id: str) -> list[Delivery]:
        """Add a new player to a game that has not started yet."""

        def action(game: Game) -> list[Delivery]:
            if game.state == GameState.STARTED:
                raise GameError(
                    "The game you are trying to join has already started. "
                    "Please click \"Rejoin Game\" if you're an existing player."
                )
            if game.state == GameState.COMPLETED:
                raise GameError("The game you are trying to join has already finished.")
            if game.get_player(request.username) is not None:
                raise GameError(
                    "There is already a player with that user-name in the game. "
                    "Please click \"Rejoin Game\" if you're an existing player."
                )

            player = Player(
                username=request.username,
                player_name=request.player_name,
                connection_id=connection_id,
            )
            game.players.append(player)

            deliveries = [Delivery(connection_id, views.build_game_view(game, player))]
            joined = views.player_joined(game, player)
            for other in game.players:
                if other is not player:
                    deliveries.append(Delivery(other.connection_id, joined))
            return deliveries

        deliveries = await self._run(request, action)
        logger.info(f"{request.username} joined game {request.game_code.upper()}")
        return deliveries

    async def rejoin_game(self, request: RejoinGameRequest, connection_id: str) -> list[Delivery]:
        """Reconnect an existing player and send them the whole game."""

        def action(game: Game) -> list[Delivery]:
            if game.state == GameState.COMPLETED:
                raise GameError("The game you are trying to rejoin has already finished.")
            player = self._acting_player(
                game,
                request.username,
                connection_id,
                "There is no player with that user-name in the game. "
                "Please click \"Join Game\" if you wish to join as a new player.",
            )
            return [Delivery(connection_id, views.build_game_view(game, player))]

        return await self._run(request, action)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_game(self, request: StartGameRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(game, request.username, connection_id)
            rules.start_game(game, player, self.rng)
            return self._to_all(game)

        deliveries = await self._run(request, action)
        logger.info(f"Game {request.game_code.upper()} started by {request.username}")
        return deliveries

    async def complete_game(self, request: CompleteGameRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(game, request.username, connection_id)
            rules.complete_game(game, player)
            return self._to_all(game)

        deliveries = await self._run(request, action)
        logger.info(f"Game {request.game_code.upper()} completed by {request.username}")
        return deliveries

    # -------------------------------------------------------------------------
    # Play
    # -------------------------------------------------------------------------

    async def play_card(self, request: PlayCardRequest, connection_id: str) -> list[Delivery]:
        request.require()
        card = self._parse_card(request.card)

        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(game, request.username, connection_id)
            rules.play_card(game, player, card)
            return self._to_all(game)

        return await self._run(request, action)

    async def take_card(self, request: TakeCardRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(game, request.username, connection_id)
            rules.draw_card(game, player, request.deck_id)
            return self._to_all(game)

        return await self._run(request, action)

    async def choose_suit(self, request: ChooseSuitRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(
                game, request.username, connection_id,
                f"The request user {request.username} was not found in the game.",
            )
            rules.choose_suit(game, player, request.suit)
            return self._to_all(game)

        return await self._run(request, action)

    async def respond_to_jump(self, request: RespondToJumpRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(
                game, request.username, connection_id,
                f"The request user {request.username} was not found in the game.",
            )
            rules.respond_to_jump(game, player, request.block_jump)
            return self._to_all(game)

        return await self._run(request, action)

    async def set_cardy(self, request: SetCardyRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(
                game, request.username, connection_id,
                f"The request user {request.username} was not found in the game.",
            )
            rules.set_cardy(game, player, request.cardy)
            return self._to_all(game)

        return await self._run(request, action)

    async def undo_last_move(self, request: UndoLastMoveRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(
                game, request.username, connection_id,
                f"The request user {request.username} was not found in the game.",
            )
            rules.undo_last_move(game, player)
            return self._to_all(game)

        return await self._run(request, action)

    async def shuffle_and_move(self, request: ShuffleAndMoveRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            player = self._acting_player(game, request.username, connection_id)
            rules.shuffle_decks(game, player, request.from_deck_id, request.to_deck_id, self.rng)
            return self._to_all(game)

        return await self._run(request, action)

    # -------------------------------------------------------------------------
    # Table management
    # -------------------------------------------------------------------------

    def _requester_and_target(
        self,
        game: Game,
        request: SetPlayerTurnRequest,
        connection_id: str,
    ) -> tuple[Player, Player]:
        requester = self._acting_player(
            game, request.username, connection_id,
            f"The request user {request.username} was not found in the game.",
        )
        target = rules.require_player(
            game,
            request.player_to_set_username,
            f"The user you wish to set, {request.player_to_set_username}, was not found in the game.",
        )
        return requester, target

    async def set_player_turn(self, request: SetPlayerTurnRequest, connection_id: str) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            requester, target = self._requester_and_target(game, request, connection_id)
            rules.set_player_turn(game, requester, target, request.play_direction)
            return self._to_all(game)

        return await self._run(request, action)

    async def change_player_position(
        self,
        request: ChangePlayerPositionRequest,
        connection_id: str,
    ) -> list[Delivery]:
        def action(game: Game) -> list[Delivery]:
            requester, target = self._requester_and_target(game, request, connection_id)
            rules.change_player_position(game, requester, target, request.play_direction)
            return self._to_all(game)

        return await self._run(request, action)

    async def send_message_to_player(
        self,
        request: SendMessageToPlayerRequest,
        connection_id: str,
    ) -> list[Delivery]:
        """Chat to one player, or to everyone; only the recipients are sent the update."""

        def action(game: Game) -> list[Delivery]:
            sender = self._acting_player(
                game, request.username, connection_id,
                f"The request user {request.username} was not found in the game.",
            )
            recipient = None
            if request.player_to_message_username:
                recipient = rules.require_player(
                    game,
                    request.player_to_message_username,
                    f"The user to message, {request.player_to_message_username}, was not found in the game.",
                )
            to_usernames = rules.send_message(game, sender, request.message, recipient)
            return self._to_usernames(game, to_usernames)

        return await self._run(request, action)
