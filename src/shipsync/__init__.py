"""shipsync - content-addressed deployment client."""

__version__ = "0.1.0"
