"""Outbound clients: language model gateway and Discord webhook."""
