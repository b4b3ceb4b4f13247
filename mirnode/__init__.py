"""Event routing, module processing and worker loops for a replicated state machine node, with a small chat application."""

__version__ = "0.1.0"