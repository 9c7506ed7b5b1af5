"""Serving side: handler controller, ASGI front door, and server lifecycles."""
