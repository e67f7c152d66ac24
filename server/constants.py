"""
Card and table constants for Cardy.

This module is the single source of truth for card names used in
narration messages, the ranks that carry a special effect, and the
default deck layout used when a game is created without explicit
deck definitions.

Special cards:
    - Two / Three: next player must pick up 2 / 3 (chains accumulate)
    - Jack: jump the next player (only another jack blocks it)
    - Queen: question, the same player must answer with another card
    - King: kick back, reverses play direction
    - Ace: wild, the player chooses the suit (or blocks a two/three chain)
"""

# =============================================================================
# Card names (used in player-facing messages)
# =============================================================================

RANK_NAMES: dict[str, str] = {
    "2": "two",
    "3": "three",
    "4": "four",
    "5": "five",
    "6": "six",
    "7": "seven",
    "8": "eight",
    "9": "nine",
    "10": "ten",
    "J": "jack",
    "Q": "queen",
    "K": "king",
    "A": "ace",
}

SUIT_NAMES: dict[str, str] = {
    "C": "clubs",
    "D": "diamonds",
    "H": "hearts",
    "S": "spades",
}

# Ranks with a special effect. The starter card on the discard pile is
# never one of these.
ACTION_RANKS: frozenset[str] = frozenset({"2", "3", "J", "Q", "K", "A"})

PACK_SIZE = 52


# =============================================================================
# Game codes
# =============================================================================

# Codes are derived from seconds elapsed since this epoch.
GAME_CODE_EPOCH_YEAR = 2000
GAME_CODE_LENGTH = 6
GAME_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


# =============================================================================
# Default table layout
# =============================================================================

PACK_DECK_ID = "pack"
DISCARD_DECK_ID = "discard"

DEFAULT_DECK_DEFINITIONS: list[dict] = [
    {
        "id": PACK_DECK_ID,
        "initial_card_deck": True,
        "is_face_up": False,
        "can_drag_to_hand": True,
        "can_drop_from_hand": False,
    },
    {
        "id": DISCARD_DECK_ID,
        "initial_card_deck": False,
        "is_face_up": True,
        "can_drag_to_hand": False,
        "can_drop_from_hand": True,
    },
]
