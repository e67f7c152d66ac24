"""
Move legality and state transitions for Cardy.

Each action function takes a Game that the caller has already loaded,
checks that the action is allowed, mutates the game, appends a narration
message addressed to everyone, and returns the narration text. Every
check happens before the first mutation, so a GameError always leaves
the game untouched.

The caller is responsible for persisting the game afterwards.
"""

import logging
import random
from typing import Optional

from dealing import deal_cards, shuffle_and_move
from game import (
    Card,
    Deck,
    Game,
    GameError,
    GameState,
    GameWon,
    Hand,
    JumpWasPlayed,
    Move,
    MoveDirection,
    Normal,
    PlayDirection,
    Player,
    QuestionWasAsked,
    Rank,
    Suit,
    ThreeWasPlayed,
    TwoWasPlayed,
    WaitingForSuit,
    is_pickup_chain,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared checks
# ---------------------------------------------------------------------------

def require_player(game: Game, username: str, message: Optional[str] = None) -> Player:
    """Look up a player or fail with a player-facing message."""
    player = game.get_player(username)
    if player is None:
        raise GameError(
            message
            or f"The user {username} was not found in the game. "
            f"Please click \"Join Game\" if you wish to join as a new player."
        )
    return player


def require_state(game: Game, state: GameState, action: str) -> None:
    """
    Fail unless the game is in the given lifecycle state.

    Args:
        action: Completes "The game in which you are trying to ...".
    """
    if game.state != state:
        raise GameError(
            f"The game in which you are trying to {action} is not in the "
            f"{state.value.lower()} state. State: {game.state.value}."
        )


def require_hand(game: Game, player: Player) -> Hand:
    hand = game.get_hand(player.username)
    if hand is None:
        raise GameError(f"The user {player.username} does not have a hand in the game.")
    return hand


def require_not_won(game: Game) -> None:
    if isinstance(game.move_state, GameWon):
        raise GameError(f"The game is over. {game.move_state.winner_name} has already won.")


def require_turn(game: Game, player: Player, action: str) -> None:
    """
    Fail unless it is the player's turn.

    Args:
        action: Completes "You may not ..., because it is not your turn."
    """
    if not game.is_turn_of(player):
        current = game.current_player
        current_name = current.player_name if current else "<unknown>"
        raise GameError(f"You may not {action}, because it is not your turn. It is {current_name}'s turn.")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def start_game(game: Game, player: Player, rng: Optional[random.Random] = None) -> str:
    """
    Deal the cards and hand the first turn to the first player.

    Raises:
        GameError: Not in the created state, or the deal is impossible.
    """
    if game.state != GameState.CREATED:
        raise GameError(
            f"The game you are trying to start is not in the correct state. State: {game.state.value}."
        )

    deal_cards(game, rng)

    first = game.players[0]
    game.player_to_move = first.username
    game.play_direction = PlayDirection.DOWN
    game.move_state = Normal()
    game.state = GameState.STARTED

    content = (
        f"{player.player_name} started the game. It is {first.player_name}'s turn, "
        f"and the play direction is down."
    )
    game.add_message(content)
    return content


def complete_game(game: Game, player: Player) -> str:
    """Close a started game. Only the game's admin may do this."""
    require_state(game, GameState.STARTED, "complete the game")
    if not player.is_admin:
        raise GameError("Only the player who created the game may complete it.")

    game.state = GameState.COMPLETED
    content = f"{player.player_name} completed the game."
    game.add_message(content)
    return content


# ---------------------------------------------------------------------------
# Card play
# ---------------------------------------------------------------------------

def evaluate_play(game: Game, card: Card, player: Player) -> str:
    """
    Apply the special-card rules for a card about to be played.

    Must only be called once it is known to be `player`'s turn and the card
    is in their hand. The first matching rule decides the outcome:

    1. Waiting for a suit: no card may be played.
    2. Jumped: only a jack, which passes the jump on to the next player.
    3. Ace: blocks a two/three chain, otherwise asks for a suit.
    4. Two chain: only another two, adding 2 to the pickup.
    5. Three chain: only another three, adding 3 to the pickup.
    6. Anything else must match the current rank or suit, and then
       2/3/Q/K/J take effect, or the player wins with their cardy card.

    Returns:
        Narration of the effect (may be empty).

    Raises:
        GameError: If the card may not be played now.
    """
    state = game.move_state
    rank, suit = card.rank, card.suit

    if isinstance(state, WaitingForSuit):
        raise GameError("You may not play a card. You have played your turn already.")

    if isinstance(state, JumpWasPlayed):
        if rank != Rank.JACK:
            raise GameError(
                f"If you are being jumped, you may only play a jack to cancel the jump. "
                f"The {card.description} is not valid."
            )
        game.current_suit = suit
        game.advance_turn(player, end_of_turn=True)
        return "The jump was blocked with a jack, and the next player is now jumped."

    if rank == Rank.ACE:
        if is_pickup_chain(state):
            blocked = "two" if isinstance(state, TwoWasPlayed) else "three"
            game.current_rank = Rank.ACE
            game.current_suit = suit
            game.move_state = Normal()
            game.advance_turn(player, end_of_turn=True)
            return f"The {blocked} was blocked with an ace. The suit is now {suit.display_name}."

        game.current_rank = Rank.ACE
        game.move_state = WaitingForSuit()
        return "They must now choose a suit."

    if isinstance(state, TwoWasPlayed):
        if rank != Rank.TWO:
            raise GameError(
                f"A two was played before, so only another two or an ace may be played. "
                f"The {card.description} is not valid."
            )
        game.current_suit = suit
        game.move_state = TwoWasPlayed(state.pickup_count + 2)
        game.advance_turn(player, end_of_turn=True)
        return f"The next player must pick {game.move_state.pickup_count} cards!"

    if isinstance(state, ThreeWasPlayed):
        if rank != Rank.THREE:
            raise GameError(
                f"A three was played before, so only another three or an ace may be played. "
                f"The {card.description} is not valid."
            )
        game.move_state = ThreeWasPlayed(state.pickup_count + 3)
        game.advance_turn(player, end_of_turn=True)
        return f"The next player must pick {game.move_state.pickup_count} cards!"

    # Nothing on the discard pile yet: any card opens play
    opening = game.current_rank is None and game.current_suit is None
    if not opening and rank != game.current_rank and suit != game.current_suit:
        rank_name = game.current_rank.display_name if game.current_rank else "<unknown>"
        suit_name = game.current_suit.display_name if game.current_suit else "<unknown>"
        raise GameError(f"Either a {rank_name} or a {suit_name} must be played.")

    game.current_rank = rank
    game.current_suit = suit

    if rank == Rank.TWO:
        game.move_state = TwoWasPlayed(2)
        game.advance_turn(player, end_of_turn=True)
        return "The next player must pick 2 cards!"

    if rank == Rank.THREE:
        game.move_state = ThreeWasPlayed(3)
        game.advance_turn(player, end_of_turn=True)
        return "The next player must pick 3 cards!"

    if rank == Rank.QUEEN:
        game.move_state = QuestionWasAsked()
        return "The question requires an answer!"

    if rank == Rank.KING:
        game.play_direction = game.play_direction.reversed()
        next_player = game.advance_turn(player, end_of_turn=True)
        return f"Kick back! It is now {next_player.player_name}'s turn."

    if rank == Rank.JACK:
        game.move_state = JumpWasPlayed()
        game.advance_turn(player, end_of_turn=True)
        return "Jump!"

    if player.cardy:
        hand = game.get_hand(player.username)
        if hand is not None and len(hand.cards) == 1:
            player.winner = True
            game.winner_name = player.player_name
            game.move_state = GameWon(player.player_name)
            return f"{player.player_name} is the winner!!!"

    game.move_state = Normal()
    game.advance_turn(player, end_of_turn=True)
    return ""


def play_card(game: Game, player: Player, card: Card) -> str:
    """
    Play a card from the player's hand onto the first deck that accepts it.

    Returns:
        The narration recorded for everyone.
    """
    require_state(game, GameState.STARTED, "play a card")
    require_not_won(game)
    require_turn(game, player, "play a card to the deck")
    hand = require_hand(game, player)
    if card not in hand.cards:
        raise GameError(f"The card {card.token} was not in {player.username}'s hand.")

    deck = next((d for d in game.decks if d.can_drop_from_hand), None)
    if deck is None:
        raise GameError("There are no decks which accept cards from your hand.")

    extra = evaluate_play(game, card, player)

    hand.cards.remove(card)
    deck.cards.insert(0, card)
    game.moves.append(Move(player.username, card, deck.id, MoveDirection.HAND_TO_DECK))

    content = f"{player.player_name} played the {card.description}."
    if extra:
        content += f" {extra}"
    game.add_message(content)

    logger.debug(f"{player.username} played {card.token} in {game.code}, state now {game.move_state.name}")
    return content


def draw_card(game: Game, player: Player, deck_id: str) -> str:
    """
    Take the top card of a deck into the player's hand.

    Outside a two/three chain the draw ends the turn. Inside one, each draw
    counts down the pickup and the turn only passes when it reaches zero.
    """
    require_state(game, GameState.STARTED, "take a card from the deck")
    require_not_won(game)
    require_turn(game, player, "take a card from the deck")
    hand = require_hand(game, player)

    deck = game.get_deck(deck_id)
    if deck is None or not deck.can_drag_to_hand:
        raise GameError(f"There are no decks with ID {deck_id} which allow dragging cards to your hand.")
    if not deck.cards:
        raise GameError("The deck has no cards.")
    if isinstance(game.move_state, JumpWasPlayed):
        raise GameError("You may not take a card from the deck, as you have been jumped.")
    if isinstance(game.move_state, WaitingForSuit):
        raise GameError("You may not take a card from the deck, as you have played your turn already.")

    card = deck.cards.pop(0)
    hand.cards.append(card)

    extra = ""
    state = game.move_state
    if is_pickup_chain(state):
        remaining = state.pickup_count - 1
        if remaining == 0:
            game.move_state = Normal()
            next_player = game.advance_turn(player, end_of_turn=True)
            extra = f" It is now {next_player.player_name}'s turn."
        else:
            game.move_state = type(state)(remaining)
            extra = f" {remaining} more cards must be picked."
    else:
        game.move_state = Normal()
        game.advance_turn(player, end_of_turn=True)

    game.moves.append(Move(player.username, card, deck.id, MoveDirection.DECK_TO_HAND))

    content = f"{player.player_name} took a card from the deck.{extra}"
    game.add_message(content)
    return content


def choose_suit(game: Game, player: Player, suit: Suit) -> str:
    """Set the suit after an ace and end the turn."""
    require_state(game, GameState.STARTED, "choose a suit")
    require_not_won(game)
    if not isinstance(game.move_state, WaitingForSuit):
        raise GameError("You may only choose a suit after playing an ace.")
    require_turn(game, player, "choose a suit")

    game.current_suit = suit
    game.move_state = Normal()
    game.advance_turn(player, end_of_turn=True)

    content = f"{player.player_name} set the suit to {suit.display_name}"
    game.add_message(content)
    return content


def respond_to_jump(game: Game, player: Player, block_jump: bool) -> str:
    """
    Resolve a jump for the jumped player.

    A player who cannot block simply loses the turn; their cardy
    declaration stands since they did not get to play.
    """
    require_state(game, GameState.STARTED, "respond to a jump")
    require_not_won(game)
    if not game.is_turn_of(player):
        raise GameError("You cannot respond to a jump, because it is not your turn.")
    if not isinstance(game.move_state, JumpWasPlayed):
        raise GameError("Attempting to block a jump when the game is not in jump mode.")

    if block_jump:
        content = f"{player.player_name} blocked the jump."
    else:
        next_player = game.advance_turn(player, end_of_turn=False)
        content = f"{player.player_name} was unable to block the jump. It is now {next_player.player_name}'s turn."

    game.move_state = Normal()
    game.add_message(content)
    return content


# ---------------------------------------------------------------------------
# Table management
# ---------------------------------------------------------------------------

def set_cardy(game: Game, player: Player, cardy: bool) -> str:
    require_state(game, GameState.STARTED, "declare cardy")
    if player.cardy == cardy:
        raise GameError(
            "You were already cardy and tried to set it as cardy again. "
            "Or you were not cardy, and tried to set it again as not cardy."
        )

    player.cardy = cardy
    content = f"{player.player_name} is cardy!" if cardy else f"{player.player_name} is not cardy."
    game.add_message(content)
    return content


def set_player_turn(
    game: Game,
    requester: Player,
    target: Player,
    direction: PlayDirection,
) -> str:
    """Hand the turn to any player and fix the play direction."""
    require_state(game, GameState.STARTED, "set a player's turn")

    game.play_direction = direction
    game.player_to_move = target.username

    content = (
        f"{requester.player_name} decided it is {target.player_name}'s turn, "
        f"with a play direction of {direction.value}."
    )
    game.add_message(content)
    return content


def change_player_position(
    game: Game,
    requester: Player,
    target: Player,
    direction: PlayDirection,
) -> str:
    """Move a player one place up or down the seating order before the start."""
    require_state(game, GameState.CREATED, "change a player's position")

    game.move_player_position(target, direction)

    content = f"{requester.player_name} moved {target.player_name} {direction.value} the list."
    game.add_message(content)
    return content


def shuffle_decks(
    game: Game,
    player: Player,
    from_deck_id: str,
    to_deck_id: str,
    rng: Optional[random.Random] = None,
) -> str:
    """Shuffle all but the top card of one deck into another."""
    require_state(game, GameState.STARTED, "shuffle and move")

    from_deck = game.get_deck(from_deck_id)
    to_deck = game.get_deck(to_deck_id)
    if from_deck is None or to_deck is None:
        raise GameError(
            f"Either the from deck ({from_deck_id}) or the to deck ({to_deck_id}) does not exist."
        )

    moved = shuffle_and_move(from_deck, to_deck, rng)
    logger.debug(f"Moved {moved} cards from {from_deck.id} to {to_deck.id} in {game.code}")

    content = f"{player.player_name} shuffled the pack and moved it to the other deck."
    game.add_message(content)
    return content


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

def undo_last_move(game: Game, player: Player) -> str:
    """
    Reverse the most recent card movement.

    Only the card itself goes back; the current rank and suit, the move
    state and whose turn it is are left as they are.
    """
    require_state(game, GameState.STARTED, "undo a move")

    move = game.last_move
    if move is None:
        raise GameError("No move was found to undo.")

    mover = require_player(game, move.username, f"The move user {move.username} was not found in the game.")
    hand = require_hand(game, mover)
    deck: Optional[Deck] = game.get_deck(move.deck_id)
    if deck is None:
        raise GameError(f"The deck ({move.deck_id}) does not exist.")

    if move.direction == MoveDirection.HAND_TO_DECK:
        top = deck.top_card()
        if top != move.card:
            top_text = top.token if top else "<no card>"
            raise GameError(
                f"The wrong card ({top_text} instead of {move.card.token}) was at the front of the deck."
            )
        deck.cards.pop(0)
        hand.cards.append(move.card)
        detail = f"The card {move.card.description} was moved back to the player's hand."
    else:
        if move.card not in hand.cards:
            raise GameError("Card not found in hand")
        hand.cards.remove(move.card)
        deck.cards.insert(0, move.card)
        detail = "The taken card was put back on to the face-down deck."

    game.moves.pop()
    game.undone_moves.append(move)

    content = f"{player.player_name} undid the last move by player {mover.player_name}. {detail}"
    game.add_message(content)
    return content


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------

def send_message(
    game: Game,
    sender: Player,
    text: str,
    recipient: Optional[Player] = None,
) -> list[str]:
    """
    Record a chat message from one player.

    Sent to a single player when a recipient is given (the sender gets a
    copy), otherwise to the whole table.

    Returns:
        Usernames the message is addressed to.
    """
    if recipient is not None:
        to_usernames = [sender.username, recipient.username]
        content = f"Message from {sender.player_name} to {recipient.player_name}: {text}"
    else:
        to_usernames = game.usernames()
        content = f"Message from {sender.player_name}: {text}"

    game.add_message(content, to_usernames=to_usernames, from_username=sender.username)
    return to_usernames
