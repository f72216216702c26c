"""Shared route dependencies."""

from fastapi import Request

from pushpilot.state import ServerState


def get_state(request: Request) -> ServerState:
    """Return the :class:`ServerState` installed by ``create_app``."""
    return request.app.state.pilot
