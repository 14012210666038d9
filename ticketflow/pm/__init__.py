"""Conversational PM agent."""
from ticketflow.pm.agent import PMAgent, PMReply, build_messages

__all__ = ["PMAgent", "PMReply", "build_messages"]
