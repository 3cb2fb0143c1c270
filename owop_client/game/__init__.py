"""Session state for the pixel world client."""

from .client_state import ClientGameState, Player, RemotePlayer

__all__ = [
    "ClientGameState",
    "Player",
    "RemotePlayer",
]
