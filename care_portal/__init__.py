"""Access portal of a community care platform."""
