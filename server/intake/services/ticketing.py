"""Bridge between the ``submitTicket`` tool call and support tickets."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..errors import ToolArgumentError
from ..models.events import ToolInvocation
from ..models.schemas import TicketRecord, ToolResponse, ToolResponseBody

logger = logging.getLogger(__name__)


SUBMIT_TICKET = "submitTicket"

# Tool argument name -> TicketRecord field.
TICKET_ARGUMENTS = {
    "name": "name",
    "email": "email",
    "municipality": "municipality",
    "system": "system",
    "issueDescription": "issue",
}


@dataclass(frozen=True)
class ToolOutcome:
    """Result of bridging one tool invocation."""

    response: ToolResponse
    ticket: Optional[TicketRecord] = None
    reference: Optional[str] = None
    missing: tuple[str, ...] = ()


def ticket_from_arguments(args: Mapping[str, Any]) -> TicketRecord:
    """Map ``submitTicket`` arguments onto a ticket.

    Raises ``ToolArgumentError`` listing every absent or blank argument.
    """

    values: dict[str, str] = {}
    missing: list[str] = []
    for argument, field_name in TICKET_ARGUMENTS.items():
        value = args.get(argument)
        text = "" if value is None else str(value).strip()
        if not text:
            missing.append(argument)
            continue
        values[field_name] = text

    if missing:
        raise ToolArgumentError(missing)
    return TicketRecord(**values)


class TicketBridge:
    """Turns tool invocations into tickets and correlated acknowledgments.

    The acknowledgment is always produced: the remote agent waits for it
    before continuing the conversation.
    """

    def __init__(
        self,
        *,
        function_name: str = SUBMIT_TICKET,
        reference_prefix: str = "SMC",
        rng: Optional[random.Random] = None,
    ) -> None:
        self.function_name = function_name
        self.reference_prefix = reference_prefix
        self._rng = rng or random.Random()

    def handle(self, invocation: ToolInvocation) -> ToolOutcome:
        if invocation.name != self.function_name:
            logger.warning("Ignoring unknown tool call %s (id=%s)", invocation.name, invocation.call_id)
            return ToolOutcome(
                response=self._respond(invocation, f"Función desconocida: {invocation.name}")
            )

        reference = f"{self.reference_prefix}-{self._rng.randrange(10_000)}"
        try:
            ticket = ticket_from_arguments(invocation.args)
        except ToolArgumentError as exc:
            logger.warning("Ticket %s not created: %s", reference, exc)
            result = (
                f"No se pudo crear el ticket. Faltan datos: {', '.join(exc.missing)}. "
                f"Referencia #{reference}"
            )
            return ToolOutcome(
                response=self._respond(invocation, result),
                reference=reference,
                missing=exc.missing,
            )

        logger.info("Ticket %s created for %s (%s)", reference, ticket.municipality, ticket.system)
        return ToolOutcome(
            response=self._respond(invocation, f"Ticket creado. Referencia #{reference}"),
            ticket=ticket,
            reference=reference,
        )

    @staticmethod
    def _respond(invocation: ToolInvocation, result: str) -> ToolResponse:
        return ToolResponse(
            tool_response=ToolResponseBody(
                call_id=invocation.call_id,
                name=invocation.name,
                response={"result": result},
            )
        )
