"""WebSocket message handlers for the Cardy card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via dispatch_message() and the HANDLERS dict,
called from the WebSocket endpoint in main.py.

Every handler follows the same shape: validate the message into a request
model, hand it to the GameSession, and deliver what comes back. Anything
the game refuses is reported to the sender alone as an "error" message.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from game import GameError
from logging_config import get_logger
from models.requests import (
    ChangePlayerPositionRequest,
    ChooseSuitRequest,
    CompleteGameRequest,
    CreateGameRequest,
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
from services.connections import ConnectionManager
from session import GameSession
from stores.game_store import ConcurrencyError
from views import error_message

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    username: Optional[str] = None
    game_code: Optional[str] = None


async def send_error(ctx: ConnectionContext, message: str) -> None:
    await ctx.websocket.send_json(error_message(message, ctx.game_code))


def describe_validation_error(error: ValidationError) -> str:
    """First problem in a rejected client message, e.g. "card: Input should be a valid string"."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid message")


async def _perform(
    data: dict,
    ctx: ConnectionContext,
    model: type[BaseModel],
    action,
    connections: ConnectionManager,
) -> None:
    """Validate, run and deliver one action, reporting refusals to the sender."""
    try:
        request = model.model_validate(data)
        deliveries = await action(request, ctx.connection_id)
    except ValidationError as e:
        await send_error(ctx, describe_validation_error(e))
        return
    except GameError as e:
        logger.with_context(username=data.get("username")).info(f"Rejected {data.get('type')}: {e}")
        await send_error(ctx, str(e))
        return
    except ConcurrencyError as e:
        logger.warning(f"Gave up on {data.get('type')} after repeated conflicts: {e}")
        await send_error(ctx, "The game was changed by another player at the same time. Please try again.")
        return

    ctx.username = request.username
    if request.game_code:
        ctx.game_code = request.game_code.upper()
    for delivery in deliveries:
        if delivery.message.get("type") == "game_created":
            ctx.game_code = delivery.message["game_code"]

    await connections.deliver(deliveries)


# ---------------------------------------------------------------------------
# Lobby handlers
# ---------------------------------------------------------------------------

async def handle_create_game(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, CreateGameRequest, session.create_game, connections)


async def handle_join_game(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, JoinGameRequest, session.join_game, connections)


async def handle_rejoin_game(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, RejoinGameRequest, session.rejoin_game, connections)


async def handle_change_player_position(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, ChangePlayerPositionRequest, session.change_player_position, connections)


async def handle_start_game(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, StartGameRequest, session.start_game, connections)


# ---------------------------------------------------------------------------
# Game play handlers
# ---------------------------------------------------------------------------

async def handle_play_card(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, PlayCardRequest, session.play_card, connections)


async def handle_take_card(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, TakeCardRequest, session.take_card, connections)


async def handle_choose_suit(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, ChooseSuitRequest, session.choose_suit, connections)


async def handle_respond_to_jump(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, RespondToJumpRequest, session.respond_to_jump, connections)


async def handle_set_cardy(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, SetCardyRequest, session.set_cardy, connections)


async def handle_undo_last_move(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, UndoLastMoveRequest, session.undo_last_move, connections)


async def handle_shuffle_and_move(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, ShuffleAndMoveRequest, session.shuffle_and_move, connections)


async def handle_set_player_turn(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, SetPlayerTurnRequest, session.set_player_turn, connections)


# ---------------------------------------------------------------------------
# Messaging / End handlers
# ---------------------------------------------------------------------------

async def handle_send_message_to_player(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, SendMessageToPlayerRequest, session.send_message_to_player, connections)


async def handle_complete_game(data: dict, ctx: ConnectionContext, *, session: GameSession, connections, **kw) -> None:
    await _perform(data, ctx, CompleteGameRequest, session.complete_game, connections)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_game": handle_create_game,
    "join_game": handle_join_game,
    "rejoin_game": handle_rejoin_game,
    "change_player_position": handle_change_player_position,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "take_card": handle_take_card,
    "choose_suit": handle_choose_suit,
    "respond_to_jump": handle_respond_to_jump,
    "set_cardy": handle_set_cardy,
    "undo_last_move": handle_undo_last_move,
    "shuffle_and_move": handle_shuffle_and_move,
    "set_player_turn": handle_set_player_turn,
    "send_message_to_player": handle_send_message_to_player,
    "complete_game": handle_complete_game,
}


async def dispatch_message(data: dict, ctx: ConnectionContext, **deps) -> None:
    """
    Route one client message to its handler.

    Unknown message types are answered with an error. An unexpected
    failure inside a handler is logged with its traceback and reported to
    the sender without details; the connection stays open.
    """
    if not isinstance(data, dict):
        await send_error(ctx, "Messages must be JSON objects.")
        return

    handler = HANDLERS.get(data.get("type"))
    if handler is None:
        await send_error(ctx, f"Unknown message type: {data.get('type')}")
        return

    try:
        await handler(data, ctx, **deps)
    except Exception:
        logger.exception(f"Unhandled error processing {data.get('type')}")
        await send_error(ctx, "Something went wrong on the server. Please try again.")
