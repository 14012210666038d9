"""Configuration module for the ticket lifecycle orchestrator."""
from ticketflow.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
