"""Tool dispatcher - validates, executes and audits PM agent tool calls.

Every call ends in a structured result dict; nothing raised by a tool
escapes ``dispatch``. Every call, accepted or rejected, leaves one audit
record.
"""
import logging
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ticketflow.errors import DependencyUnavailable, TicketflowError, ValidationError
from ticketflow.kanban.transitions import DATASTORE_ERRORS
from ticketflow.schemas.tool_call import ToolCallRecord
from ticketflow.tools.arguments import describe_validation_error
from ticketflow.tools.definitions import TOOL_SPECS
from ticketflow.tools.ticket_tools import TicketTools

logger = logging.getLogger(__name__)

AUDIT_BODY_LIMIT = 500


class DispatchResult(BaseModel):
    result: dict[str, Any]
    audit_record: ToolCallRecord


def _audit_input(tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    audited = dict(arguments)
    body = audited.get("body_md")
    if tool_name == "evaluate_ticket_ready" and isinstance(body, str) and len(body) > AUDIT_BODY_LIMIT:
        audited["body_md"] = body[:AUDIT_BODY_LIMIT] + "..."
    return audited


class ToolDispatcher:
    """Routes tool-invocation requests to ``TicketTools`` handlers.

    Usage:
        dispatcher = ToolDispatcher(tools, audit_store=ToolCallStore(conn))
        outcome = await dispatcher.dispatch("create_ticket", {...}, run_id=turn_id)
        outcome.result        # {"tool", "success", "result" | "error", ...}
        outcome.audit_record  # ToolCallRecord, already appended
    """

    def __init__(self, tools: TicketTools, audit_store=None):
        self.tools = tools
        self.audit_store = audit_store

    async def dispatch(
        self,
        tool_name: str,
        arguments: Optional[dict[str, Any]],
        *,
        run_id: str,
    ) -> DispatchResult:
        arguments = arguments if isinstance(arguments, dict) else {}
        logger.info(
            f"Dispatching tool: {tool_name}",
            extra={"run_id": run_id, "tool_name": tool_name},
        )

        try:
            payload = await self._execute(tool_name, arguments)
            result = {"tool": tool_name, "success": True, "result": payload}
        except TicketflowError as e:
            logger.info(
                f"Tool {tool_name} rejected: {e.message}",
                extra={"run_id": run_id, "error_kind": e.kind},
            )
            result = {"tool": tool_name, "success": False, **e.to_dict()}
        except DATASTORE_ERRORS as e:
            logger.error(
                f"Tool {tool_name} datastore failure: {e}",
                extra={"run_id": run_id},
            )
            error = DependencyUnavailable(f"Datastore unavailable: {e}")
            result = {"tool": tool_name, "success": False, **error.to_dict()}
        except Exception as e:
            logger.error(
                f"Tool {tool_name} failed: {e}",
                extra={"run_id": run_id},
                exc_info=True,
            )
            error = DependencyUnavailable(f"{tool_name} failed: {e}")
            result = {"tool": tool_name, "success": False, **error.to_dict()}

        record = ToolCallRecord(
            run_id=run_id,
            tool_name=tool_name,
            input=_audit_input(tool_name, arguments),
            output=result,
            success=result["success"],
            error_kind=result.get("error_kind"),
        )
        await self._append_audit(record)
        return DispatchResult(result=result, audit_record=record)

    async def _execute(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        spec = TOOL_SPECS.get(tool_name)
        if spec is None:
            raise ValidationError(
                f"Unknown tool: {tool_name}",
                details={"field": "tool_name", "available_tools": sorted(TOOL_SPECS)},
            )
        try:
            args = spec.args_model.model_validate(arguments)
        except PydanticValidationError as e:
            message, fields = describe_validation_error(e)
            raise ValidationError(message, details={"fields": fields}) from e

        handler = getattr(self.tools, tool_name)
        return await handler(args)

    async def _append_audit(self, record: ToolCallRecord) -> None:
        if self.audit_store is None:
            return
        try:
            await self.audit_store.append(record)
        except Exception as e:
            logger.error(
                f"Failed to record tool call: {e}",
                extra={"run_id": record.run_id, "tool_name": record.tool_name},
                exc_info=True,
            )
