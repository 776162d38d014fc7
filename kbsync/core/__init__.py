"""Interactive message state engine."""
