"""Ticket issuing and lifecycle."""
