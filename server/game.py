"""
Game model for Cardy, a Crazy-Eights / Switch style shedding game.

This module holds the Game aggregate and everything it owns: players,
hands, decks, the move log and the message log. The rules that mutate
it live in rules.py (card play, drawing, undo) and dealing.py (pack
building and dealing).

Cardy Rules Summary:
    - Each player is dealt a hand; one non-action card starts the discard pile
    - A played card must match the rank or suit of the previous card
    - Two / Three: next player picks up 2 / 3 unless they add to the chain
    - Jack: next player is jumped unless they play another jack
    - Queen: a question, the same player must answer with another card
    - King: kick back, play direction reverses
    - Ace: wild, the player chooses the next suit
    - A player must declare "cardy" when down to one card to win with it

Everything that crosses the storage boundary goes through to_dict() and
from_dict(); cards are written as two-character tokens such as "10D".
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional, Union

from constants import ACTION_RANKS, RANK_NAMES, SUIT_NAMES


class GameError(Exception):
    """
    A player action the current game does not allow.

    The message is shown to the player as-is.
    """
    pass


class Suit(Enum):
    """Card suits, valued by their token letter."""

    CLUBS = "C"
    DIAMONDS = "D"
    HEARTS = "H"
    SPADES = "S"

    @property
    def display_name(self) -> str:
        return SUIT_NAMES[self.value]


class Rank(Enum):
    """Card ranks, valued by their token text. There are no jokers."""

    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"
    ACE = "A"

    @property
    def display_name(self) -> str:
        return RANK_NAMES[self.value]


@dataclass(frozen=True)
class Card:
    """
    A single playing card.

    Cards are values: two cards with the same rank and suit are equal,
    and a single pack holds each combination exactly once.
    """

    rank: Rank
    suit: Suit

    @classmethod
    def from_token(cls, token: str) -> "Card":
        """
        Parse a card token such as "QS" or "10D".

        Raises:
            ValueError: If the token is not a rank followed by a suit letter.
        """
        if not isinstance(token, str) or len(token) < 2:
            raise ValueError(f"Invalid card: {token!r}")
        try:
            return cls(Rank(token[:-1].upper()), Suit(token[-1].upper()))
        except ValueError:
            raise ValueError(f"Invalid card: {token!r}") from None

    @property
    def token(self) -> str:
        return f"{self.rank.value}{self.suit.value}"

    @property
    def description(self) -> str:
        """Player-facing name, e.g. "ten of diamonds"."""
        return f"{self.rank.display_name} of {self.suit.display_name}"

    @property
    def is_action(self) -> bool:
        return self.rank.value in ACTION_RANKS

    def __str__(self) -> str:
        return self.token


class GameState(str, Enum):
    """Lifecycle of a game."""

    CREATED = "Created"
    STARTED = "Started"
    COMPLETED = "Completed"


class PlayDirection(str, Enum):
    """
    Direction of play around the player list.

    DOWN moves to the next player in the list, UP to the previous one.
    Also used to move a player up or down the list before the start.
    """

    UP = "Up"
    DOWN = "Down"

    def reversed(self) -> "PlayDirection":
        return PlayDirection.DOWN if self == PlayDirection.UP else PlayDirection.UP


class MoveDirection(str, Enum):
    """Which way a card travelled in a recorded move."""

    HAND_TO_DECK = "HandToDeck"
    DECK_TO_HAND = "DeckToHand"


# ---------------------------------------------------------------------------
# Move state
#
# The sub-state that governs special-card effects. Each variant carries only
# the data that is meaningful for it: the pickup counter exists only while a
# two/three chain is running, and the winner's name only once the game is won.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Normal:
    name: ClassVar[str] = "Normal"


@dataclass(frozen=True)
class WaitingForSuit:
    """An ace was played; the same player must now choose a suit."""
    name: ClassVar[str] = "WaitingForSuit"


@dataclass(frozen=True)
class JumpWasPlayed:
    """A jack was played; the current player is jumped unless they play a jack."""
    name: ClassVar[str] = "JumpWasPlayed"


@dataclass(frozen=True)
class QuestionWasAsked:
    """A queen was played; the same player must answer with another card."""
    name: ClassVar[str] = "QuestionWasAsked"


@dataclass(frozen=True)
class TwoWasPlayed:
    pickup_count: int
    name: ClassVar[str] = "TwoWasPlayed"


@dataclass(frozen=True)
class ThreeWasPlayed:
    pickup_count: int
    name: ClassVar[str] = "ThreeWasPlayed"


@dataclass(frozen=True)
class GameWon:
    winner_name: str
    name: ClassVar[str] = "GameWon"


MoveState = Union[
    Normal,
    WaitingForSuit,
    JumpWasPlayed,
    QuestionWasAsked,
    TwoWasPlayed,
    ThreeWasPlayed,
    GameWon,
]

MOVE_STATE_TYPES: dict[str, type] = {
    cls.name: cls
    for cls in (
        Normal,
        WaitingForSuit,
        JumpWasPlayed,
        QuestionWasAsked,
        TwoWasPlayed,
        ThreeWasPlayed,
        GameWon,
    )
}


def move_state_to_dict(state: MoveState) -> dict:
    return {"name": state.name, **asdict(state)}


def move_state_from_dict(data: dict) -> MoveState:
    """Rebuild a move state from its serialized form."""
    fields = dict(data)
    name = fields.pop("name")
    try:
        state_type = MOVE_STATE_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown move state: {name!r}") from None
    return state_type(**fields)


def is_pickup_chain(state: MoveState) -> bool:
    return isinstance(state, (TwoWasPlayed, ThreeWasPlayed))


# ---------------------------------------------------------------------------
# Table objects
# ---------------------------------------------------------------------------

@dataclass
class Deck:
    """
    A pile of cards on the table.

    cards[0] is the top of the deck. The capability flags decide whether
    players may draw from it (can_drag_to_hand) or play onto it
    (can_drop_from_hand). initial_card_deck marks the deck that receives
    the undealt remainder of the pack.
    """

    id: str
    cards: list[Card] = field(default_factory=list)
    is_face_up: bool = False
    initial_card_deck: bool = False
    can_drag_to_hand: bool = False
    can_drop_from_hand: bool = False

    def top_card(self) -> Optional[Card]:
        return self.cards[0] if self.cards else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cards": [card.token for card in self.cards],
            "is_face_up": self.is_face_up,
            "initial_card_deck": self.initial_card_deck,
            "can_drag_to_hand": self.can_drag_to_hand,
            "can_drop_from_hand": self.can_drop_from_hand,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Deck":
        return cls(
            id=data["id"],
            cards=[Card.from_token(t) for t in data.get("cards", [])],
            is_face_up=data.get("is_face_up", False),
            initial_card_deck=data.get("initial_card_deck", False),
            can_drag_to_hand=data.get("can_drag_to_hand", False),
            can_drop_from_hand=data.get("can_drop_from_hand", False),
        )


@dataclass
class Hand:
    """The cards held by one player, in the order they were received."""

    username: str
    cards: list[Card] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"username": self.username, "cards": [card.token for card in self.cards]}

    @classmethod
    def from_dict(cls, data: dict) -> "Hand":
        return cls(
            username=data["username"],
            cards=[Card.from_token(t) for t in data.get("cards", [])],
        )


@dataclass
class Player:
    """
    A player seated at a game.

    Attributes:
        username: Unique (case-insensitive) identifier within the game.
        player_name: Display name.
        is_admin: True for the player who created the game.
        connection_id: Live connection the player last acted from.
        cardy: Player has declared they hold their last card.
        winner: Player won the game.
    """

    username: str
    player_name: str
    is_admin: bool = False
    connection_id: Optional[str] = None
    cardy: bool = False
    winner: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Player":
        return cls(**data)


@dataclass
class Move:
    """A card movement that can be undone."""

    username: str
    card: Card
    deck_id: str
    direction: MoveDirection

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "card": self.card.token,
            "deck_id": self.deck_id,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Move":
        return cls(
            username=data["username"],
            card=Card.from_token(data["card"]),
            deck_id=data["deck_id"],
            direction=MoveDirection(data["direction"]),
        )


@dataclass
class Message:
    """Narration or a private message, shown to the listed players only."""

    content: str
    to_usernames: list[str]
    from_username: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_for(self, username: str) -> bool:
        return username.lower() in (u.lower() for u in self.to_usernames)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "to_usernames": list(self.to_usernames),
            "from_username": self.from_username,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            content=data["content"],
            to_usernames=list(data.get("to_usernames", [])),
            from_username=data.get("from_username"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


# ---------------------------------------------------------------------------
# Game aggregate
# ---------------------------------------------------------------------------

@dataclass
class Game:
    """
    One match of Cardy and everything it owns.

    The aggregate is loaded, mutated and saved as a whole for every
    player action. Once dealt, the cards across all hands and decks are
    always exactly one 52-card pack.
    """

    id: str
    code: str
    name: str
    state: GameState = GameState.CREATED
    cards_to_deal: int = 7
    players: list[Player] = field(default_factory=list)
    decks: list[Deck] = field(default_factory=list)
    hands: list[Hand] = field(default_factory=list)
    moves: list[Move] = field(default_factory=list)
    undone_moves: list[Move] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    player_to_move: Optional[str] = None
    play_direction: PlayDirection = PlayDirection.DOWN
    current_rank: Optional[Rank] = None
    current_suit: Optional[Suit] = None
    move_state: MoveState = field(default_factory=Normal)
    winner_name: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(cls, code: str, name: str, game_id: Optional[str] = None, **kwargs) -> "Game":
        return cls(id=game_id or str(uuid.uuid4()), code=code, name=name, **kwargs)

    # -------------------------------------------------------------------------
    # Lookups (usernames compare case-insensitively)
    # -------------------------------------------------------------------------

    def get_player(self, username: Optional[str]) -> Optional[Player]:
        if not username:
            return None
        wanted = username.lower()
        for player in self.players:
            if player.username.lower() == wanted:
                return player
        return None

    def get_hand(self, username: str) -> Optional[Hand]:
        wanted = username.lower()
        for hand in self.hands:
            if hand.username.lower() == wanted:
                return hand
        return None

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        for deck in self.decks:
            if deck.id == deck_id:
                return deck
        return None

    def usernames(self) -> list[str]:
        return [p.username for p in self.players]

    @property
    def current_player(self) -> Optional[Player]:
        return self.get_player(self.player_to_move)

    def is_turn_of(self, player: Player) -> bool:
        current = self.current_player
        return current is not None and current.username.lower() == player.username.lower()

    @property
    def pickup_count(self) -> int:
        """Cards still to be picked up in a two/three chain (0 outside one)."""
        if is_pickup_chain(self.move_state):
            return self.move_state.pickup_count
        return 0

    @property
    def last_move(self) -> Optional[Move]:
        return self.moves[-1] if self.moves else None

    # -------------------------------------------------------------------------
    # Turn order
    # -------------------------------------------------------------------------

    def advance_turn(self, player: Player, end_of_turn: bool) -> Player:
        """
        Pass the turn on from `player` in the current play direction.

        DOWN steps to the next player in the list and UP to the previous
        one, wrapping around at both ends.

        Args:
            player: The player whose turn is ending.
            end_of_turn: If True, the player's cardy declaration is cleared;
                it has to be made again on their next turn.

        Returns:
            The player whose turn it now is.
        """
        index = self.players.index(player)
        step = -1 if self.play_direction == PlayDirection.UP else 1
        next_player = self.players[(index + step) % len(self.players)]
        self.player_to_move = next_player.username

        if end_of_turn:
            player.cardy = False

        return next_player

    def move_player_position(self, player: Player, direction: PlayDirection) -> None:
        """
        Swap a player with their neighbour in the seating order.

        Raises:
            GameError: If the player is already at that end of the list.
        """
        index = self.players.index(player)
        if direction == PlayDirection.UP:
            if index == 0:
                raise GameError("Can't move player up - they are at the top of the list.")
            other = index - 1
        else:
            if index == len(self.players) - 1:
                raise GameError("Can't move player down - they are at the bottom of the list.")
            other = index + 1

        self.players[index], self.players[other] = self.players[other], self.players[index]

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def add_message(
        self,
        content: str,
        to_usernames: Optional[list[str]] = None,
        from_username: Optional[str] = None,
    ) -> Message:
        """Record a message, addressed to every player unless recipients are given."""
        message = Message(
            content=content,
            to_usernames=list(to_usernames) if to_usernames is not None else self.usernames(),
            from_username=from_username,
        )
        self.messages.append(message)
        return message

    def messages_for(self, username: str) -> list[Message]:
        return [m for m in self.messages if m.is_for(username)]

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def all_cards(self) -> list[Card]:
        """Every card currently on the table, in hands and in decks."""
        cards = [card for hand in self.hands for card in hand.cards]
        cards.extend(card for deck in self.decks for card in deck.cards)
        return cards

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "state": self.state.value,
            "cards_to_deal": self.cards_to_deal,
            "players": [p.to_dict() for p in self.players],
            "decks": [d.to_dict() for d in self.decks],
            "hands": [h.to_dict() for h in self.hands],
            "moves": [m.to_dict() for m in self.moves],
            "undone_moves": [m.to_dict() for m in self.undone_moves],
            "messages": [m.to_dict() for m in self.messages],
            "player_to_move": self.player_to_move,
            "play_direction": self.play_direction.value,
            "current_rank": self.current_rank.value if self.current_rank else None,
            "current_suit": self.current_suit.value if self.current_suit else None,
            "move_state": move_state_to_dict(self.move_state),
            "winner_name": self.winner_name,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Game":
        return cls(
            id=data["id"],
            code=data["code"],
            name=data["name"],
            state=GameState(data["state"]),
            cards_to_deal=data["cards_to_deal"],
            players=[Player.from_dict(p) for p in data.get("players", [])],
            decks=[Deck.from_dict(d) for d in data.get("decks", [])],
            hands=[Hand.from_dict(h) for h in data.get("hands", [])],
            moves=[Move.from_dict(m) for m in data.get("moves", [])],
            undone_moves=[Move.from_dict(m) for m in data.get("undone_moves", [])],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            player_to_move=data.get("player_to_move"),
            play_direction=PlayDirection(data.get("play_direction", PlayDirection.DOWN.value)),
            current_rank=Rank(data["current_rank"]) if data.get("current_rank") else None,
            current_suit=Suit(data["current_suit"]) if data.get("current_suit") else None,
            move_state=move_state_from_dict(data.get("move_state", {"name": Normal.name})),
            winner_name=data.get("winner_name"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
