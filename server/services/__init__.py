"""Services package for Cardy connection handling."""

from .connections import ConnectionManager

__all__ = [
    "ConnectionManager",
]
