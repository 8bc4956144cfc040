"""chatcast: real-time chat broadcaster over WebSockets."""

__version__ = "0.1.0"
