"""Adapters for external collaborators of the protection client."""
