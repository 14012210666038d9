"""Cloud agent status client and poll loop."""
from ticketflow.agents.cloud_client import CloudAgentClient, CloudAgentError, map_status
from ticketflow.agents.poller import poll_agent_run

__all__ = ["CloudAgentClient", "CloudAgentError", "map_status", "poll_agent_run"]
