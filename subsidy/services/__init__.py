"""Collaborator services around the workflow core."""
