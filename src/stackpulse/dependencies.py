"""Shared FastAPI dependencies."""

from fastapi import Request

from stackpulse.events.bus import UpdateEventBus


def get_event_bus(request: Request) -> UpdateEventBus:
    """Return the application's update event bus."""
    return request.app.state.event_bus
