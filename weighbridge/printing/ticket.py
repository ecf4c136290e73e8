"""Weighbridge ticket record and the print request contract.

The HTTP layer decodes a JSON body of the form ``{"printData": {...}}`` and
hands it to ``handle_print_request`` together with whatever printer backend
is configured. Formatting the ticket for the printer is the backend's job.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger("weighbridge.printing")


class TicketError(ValueError):
    """Print data is missing or malformed."""


# JSON key -> Ticket attribute
_FIELDS = {
    "ticketNumber": "ticket_number",
    "vehicleId": "vehicle_id",
    "supplier": "supplier",
    "address": "address",
    "timeIn": "time_in",
    "timeOut": "time_out",
    "weightIn": "weight_in",
    "weightOut": "weight_out",
    "grossWeight": "gross_weight",
    "title": "title",
    "footer": "footer",
}


@dataclass
class Ticket:
    """One weighing ticket. Values are kept as the client sent them."""

    ticket_number: str
    vehicle_id: str = ""
    supplier: str = ""
    address: str = ""
    time_in: str = ""
    time_out: str = ""
    weight_in: str = ""
    weight_out: str = ""
    gross_weight: str = ""
    title: str = ""
    footer: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ticket":
        if not isinstance(data, dict):
            raise TicketError("printData must be an object")
        values = {}
        for key, attr in _FIELDS.items():
            value = data.get(key)
            if value is None:
                continue
            values[attr] = str(value)
        if not values.get("ticket_number"):
            raise TicketError("printData.ticketNumber is required")
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        attrs = asdict(self)
        return {key: attrs[attr] for key, attr in _FIELDS.items()}


class TicketPrinter(Protocol):
    def print_ticket(self, ticket: Ticket) -> bool:
        ...


@dataclass
class PrintResponse:
    status_code: int
    success: bool
    message: str

    def to_json(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


def handle_print_request(body: Optional[Dict[str, Any]], printer: TicketPrinter) -> PrintResponse:
    """Validate a print request body and pass the ticket to ``printer``.

    Returns 200 on success and 500 on any failure, whether the body was
    invalid, the printer reported failure or the printer raised.
    """
    try:
        if not isinstance(body, dict) or "printData" not in body:
            raise TicketError("Request body must contain printData")
        ticket = Ticket.from_dict(body["printData"])
    except TicketError as e:
        logger.warning("Rejected print request: %s", e)
        return PrintResponse(500, False, str(e))

    logger.info("Printing ticket %s", ticket.ticket_number)
    logger.debug("Ticket fields: %s", ticket.to_dict())
    try:
        ok = printer.print_ticket(ticket)
    except Exception as e:
        logger.exception("Printer failed on ticket %s", ticket.ticket_number)
        return PrintResponse(500, False, f"Failed to print ticket: {e}")

    if not ok:
        logger.warning("Printer reported failure for ticket %s", ticket.ticket_number)
        return PrintResponse(500, False, "Failed to print ticket")
    return PrintResponse(200, True, "Ticket printed successfully")
