"""
Request models for Cardy player actions.

One model per action. Fields arrive straight from the client message, so
they are all optional here; each action names the fields it cannot do
without via REQUIRED and require() reports the first missing one in the
form "<Request>.<field> must be supplied".
"""

from typing import ClassVar, Optional

from pydantic import BaseModel

from game import GameError, PlayDirection, Suit


class DeckDefinition(BaseModel):
    """Layout of one deck on the table, supplied when a game is created."""
    id: str
    initial_card_deck: bool = False
    is_face_up: bool = False
    can_drag_to_hand: bool = False
    can_drop_from_hand: bool = False


class ActionRequest(BaseModel):
    """Base for all requests: every action is made by a user in a game."""
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username")

    game_code: Optional[str] = None
    username: Optional[str] = None

    def require(self) -> None:
        """
        Check that every required field is present and non-empty.

        Raises:
            GameError: Naming the first missing field.
        """
        for name in self.REQUIRED:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise GameError(f"{type(self).__name__}.{name} must be supplied")


class CreateGameRequest(ActionRequest):
    """Create a game; the creator becomes its first player and admin."""
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_id", "game_name", "username", "player_name")

    game_id: Optional[str] = None
    game_name: Optional[str] = None
    player_name: Optional[str] = None
    number_of_cards_to_deal: Optional[int] = None
    decks: Optional[list[DeckDefinition]] = None


class JoinGameRequest(ActionRequest):
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "player_name")

    player_name: Optional[str] = None


class RejoinGameRequest(ActionRequest):
    pass


class StartGameRequest(ActionRequest):
    pass


class PlayCardRequest(ActionRequest):
    """Play a card token such as "10D" onto the discard pile."""
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "card")

    card: Optional[str] = None


class TakeCardRequest(ActionRequest):
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "deck_id")

    deck_id: Optional[str] = None


class UndoLastMoveRequest(ActionRequest):
    pass


class ShuffleAndMoveRequest(ActionRequest):
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "from_deck_id", "to_deck_id")

    from_deck_id: Optional[str] = None
    to_deck_id: Optional[str] = None


class SetCardyRequest(ActionRequest):
    cardy: bool = True


class ChooseSuitRequest(ActionRequest):
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "suit")

    suit: Optional[Suit] = None


class RespondToJumpRequest(ActionRequest):
    block_jump: bool = False


class SetPlayerTurnRequest(ActionRequest):
    """Give the turn to a player; `username` is the player asking."""
    REQUIRED: ClassVar[tuple[str, ...]] = (
        "game_code", "username", "player_to_set_username", "play_direction",
    )

    player_to_set_username: Optional[str] = None
    play_direction: Optional[PlayDirection] = None


class ChangePlayerPositionRequest(SetPlayerTurnRequest):
    """Move a player one place up or down the seating order."""
    pass


class SendMessageToPlayerRequest(ActionRequest):
    """Chat message; sent to the whole table when no player is named."""
    REQUIRED: ClassVar[tuple[str, ...]] = ("game_code", "username", "message")

    message: Optional[str] = None
    player_to_message_username: Optional[str] = None


class CompleteGameRequest(ActionRequest):
    pass
