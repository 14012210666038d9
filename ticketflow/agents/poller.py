"""Poll loop turning cloud agent status into a stage stream."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from ticketflow.agents.cloud_client import CloudAgentClient, CloudAgentError, map_status
from ticketflow.config import get_settings
from ticketflow.schemas.agent_run import RunStage

logger = logging.getLogger(__name__)

StageCallback = Callable[[RunStage, dict[str, Any]], Awaitable[None]]


async def poll_agent_run(
    client: CloudAgentClient,
    agent_id: str,
    on_stage: StageCallback,
    *,
    interval: Optional[float] = None,
    timeout: Optional[float] = None,
) -> RunStage:
    """Poll until the run reaches a terminal stage or the deadline passes.

    ``on_stage`` is awaited once per stage change. On deadline a ``timeout``
    stage is emitted and returned. Caller cancellation propagates.
    """
    settings = get_settings()
    interval = interval if interval is not None else settings.agent_poll_interval_seconds
    timeout = timeout if timeout is not None else settings.agent_poll_timeout_seconds
    last_stage: Optional[RunStage] = None

    async def _emit(stage: RunStage, payload: dict[str, Any]) -> None:
        nonlocal last_stage
        if stage != last_stage:
            last_stage = stage
            await on_stage(stage, payload)

    async def _loop() -> RunStage:
        await _emit(RunStage.POLLING, {"id": agent_id})
        while True:
            try:
                payload = await client.get_status(agent_id)
            except CloudAgentError as e:
                if 400 <= e.status_code < 500 and e.status_code != 429:
                    await _emit(RunStage.FAILED, {"id": agent_id, "error": e.message})
                    return RunStage.FAILED
                logger.warning(f"Agent status poll failed: {e}", extra={"agent_id": agent_id})
                payload = None
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Agent status poll failed: {e}", extra={"agent_id": agent_id})
                payload = None

            if payload is not None:
                stage = map_status(payload.get("status"))
                await _emit(stage, payload)
                if stage.is_terminal:
                    return stage
            await asyncio.sleep(interval)

    try:
        return await asyncio.wait_for(_loop(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Agent poll deadline reached",
            extra={"agent_id": agent_id, "timeout_seconds": timeout},
        )
        await on_stage(RunStage.TIMEOUT, {"id": agent_id, "timeout_seconds": timeout})
        return RunStage.TIMEOUT
