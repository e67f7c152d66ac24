"""
Pack building, dealing and deck transfers for Cardy.

Randomness always comes from a random.Random passed in by the caller,
so a seeded instance gives a reproducible deal in tests.
"""

import logging
import random
from typing import Optional

from constants import PACK_SIZE
from game import Card, Deck, Game, GameError, Hand, Rank, Suit

logger = logging.getLogger(__name__)


class DealError(GameError):
    """The game's configuration does not allow a deal."""
    pass


def build_pack() -> list[Card]:
    """
    Build one standard 52-card pack, unshuffled.

    Suits in the order C, D, H, S; ranks 2-10, J, Q, K, A within each suit.
    """
    return [Card(rank, suit) for suit in Suit for rank in Rank]


def is_action_card(card: Card) -> bool:
    """Twos, threes and court cards and aces all carry a special effect."""
    return card.is_action


def deal_cards(game: Game, rng: Optional[random.Random] = None) -> Optional[Card]:
    """
    Shuffle a fresh pack and deal it out.

    Every player gets `game.cards_to_deal` contiguous cards from the shuffled
    pack in seating order, the remainder goes to the deck marked as the
    initial card deck, and the first non-action card of that remainder is
    moved onto the first other deck to start the discard pile. The current
    rank and suit are taken from that starter card.

    If the remainder holds no non-action card, the discard pile starts
    empty and the current rank and suit stay unset, so any card may be
    played first.

    Args:
        game: Game to deal. Hands are replaced.
        rng: Random source for the shuffle.

    Returns:
        The starter card, or None if the discard pile was left empty.

    Raises:
        DealError: Too many cards requested, or the deck layout is missing
            an initial card deck or a deck to start the discard pile on.
    """
    rng = rng or random.Random()
    per_hand = game.cards_to_deal
    players = game.players

    if per_hand < 0:
        raise DealError(f"Cannot deal {per_hand} cards.")
    if len(players) * per_hand > PACK_SIZE:
        raise DealError(
            f"Dealing {per_hand} cards to {len(players)} players results in too many cards being used."
        )

    pack_deck = next((d for d in game.decks if d.initial_card_deck), None)
    discard_deck = next((d for d in game.decks if not d.initial_card_deck), None)
    if pack_deck is None:
        raise DealError("The game has no deck to hold the initial pack of cards.")
    if discard_deck is None:
        raise DealError("The game has no deck to start the discard pile on.")

    cards = build_pack()
    rng.shuffle(cards)

    dealt = len(players) * per_hand
    remainder = cards[dealt:]
    starter = next((c for c in remainder if not is_action_card(c)), None)
    if starter is not None:
        remainder.remove(starter)

    game.hands = [
        Hand(username=player.username, cards=cards[i * per_hand:(i + 1) * per_hand])
        for i, player in enumerate(players)
    ]
    for deck in game.decks:
        deck.cards = []
    pack_deck.cards = remainder
    if starter is not None:
        discard_deck.cards.append(starter)
        game.current_rank = starter.rank
        game.current_suit = starter.suit
    else:
        game.current_rank = None
        game.current_suit = None

    logger.debug(
        f"Dealt {per_hand} cards to {len(players)} players in game {game.code}, "
        f"starter {starter.token if starter else None}, {len(pack_deck.cards)} left in {pack_deck.id}"
    )
    return starter


def shuffle_and_move(
    from_deck: Deck,
    to_deck: Deck,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Move all but the top card of one deck onto another and shuffle it.

    Used to turn the discard pile back into a drawing pack: the card in
    play stays where it is.

    Returns:
        Number of cards moved.

    Raises:
        GameError: If the from deck has fewer than two cards.
    """
    if not from_deck.cards:
        raise GameError("The from deck has no cards.")
    if len(from_deck.cards) == 1:
        raise GameError("The from deck has only one card.")

    rng = rng or random.Random()
    top, rest = from_deck.cards[0], from_deck.cards[1:]
    from_deck.cards = [top]
    to_deck.cards = to_deck.cards + rest
    rng.shuffle(to_deck.cards)
    return len(rest)
