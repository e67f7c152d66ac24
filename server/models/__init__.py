"""Models package for Cardy client requests."""

from .requests import (
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

__all__ = [
    "ActionRequest",
    "ChangePlayerPositionRequest",
    "ChooseSuitRequest",
    "CompleteGameRequest",
    "CreateGameRequest",
    "DeckDefinition",
    "JoinGameRequest",
    "PlayCardRequest",
    "RejoinGameRequest",
    "RespondToJumpRequest",
    "SendMessageToPlayerRequest",
    "SetCardyRequest",
    "SetPlayerTurnRequest",
    "ShuffleAndMoveRequest",
    "StartGameRequest",
    "TakeCardRequest",
    "UndoLastMoveRequest",
]
