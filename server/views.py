"""
Per-player projections of a game, and the server message envelopes.

A player only ever sees their own hand. Other players are reduced to
public info (name, flags and card count), and a deck shows its top card
only when it lies face up.
"""

from typing import Optional

from game import Deck, Game, Player


def player_info(game: Game, player: Player) -> dict:
    """Public info about a player, safe to show to everyone."""
    hand = game.get_hand(player.username)
    return {
        "username": player.username,
        "player_name": player.player_name,
        "is_admin": player.is_admin,
        "cardy": player.cardy,
        "winner": player.winner,
        "card_count": len(hand.cards) if hand else 0,
    }


def visible_deck(deck: Deck) -> dict:
    top = deck.top_card()
    return {
        "id": deck.id,
        "has_cards": bool(deck.cards),
        "top_card": top.token if deck.is_face_up and top else None,
        "is_face_up": deck.is_face_up,
        "can_drag_to_hand": deck.can_drag_to_hand,
        "can_drop_from_hand": deck.can_drop_from_hand,
    }


def build_game_view(game: Game, player: Player) -> dict:
    """
    Build the full game state as seen by one player.

    Args:
        game: The game.
        player: Player the view is for.

    Returns:
        A "full_game" server message.
    """
    hand = game.get_hand(player.username)
    return {
        "type": "full_game",
        "game_id": game.id,
        "game_code": game.code,
        "game_name": game.name,
        "game_state": game.state.value,
        "player_info": player_info(game, player),
        "all_players": [player_info(game, p) for p in game.players],
        "hand": [card.token for card in hand.cards] if hand else [],
        "decks": [visible_deck(d) for d in game.decks],
        "move_can_be_undone": bool(game.moves),
        "messages": [m.content for m in game.messages_for(player.username)],
        "player_to_move_username": game.player_to_move,
        "play_direction": game.play_direction.value,
        "move_state": game.move_state.name,
        "pickup_count": game.pickup_count,
        "current_rank": game.current_rank.value if game.current_rank else None,
        "current_suit": game.current_suit.value if game.current_suit else None,
        "winner_name": game.winner_name,
    }


def game_created(game: Game) -> dict:
    return {
        "type": "game_created",
        "game_id": game.id,
        "game_code": game.code,
        "game_name": game.name,
    }


def player_joined(game: Game, player: Player) -> dict:
    """Tell the existing players who just sat down."""
    return {
        "type": "player_joined",
        "game_code": game.code,
        "player": player_info(game, player),
        "all_players": [player_info(game, p) for p in game.players],
    }


def error_message(message: str, game_code: Optional[str] = None) -> dict:
    payload = {"type": "error", "message": message}
    if game_code:
        payload["game_code"] = game_code
    return payload
