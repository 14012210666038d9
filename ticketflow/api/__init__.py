"""HTTP API for the ticket lifecycle orchestrator."""
from ticketflow.api.routes import cancel_watchers, router

__all__ = ["router", "cancel_watchers"]
