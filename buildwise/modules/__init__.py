"""Module proposals, approval and rejection."""
