"""Ticket printing collaborator contract."""

from .ticket import PrintResponse, Ticket, TicketError, TicketPrinter, handle_print_request

__all__ = [
    "PrintResponse",
    "Ticket",
    "TicketError",
    "TicketPrinter",
    "handle_print_request",
]
