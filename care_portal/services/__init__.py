"""Integrations with storage and with the remote authentication service."""
