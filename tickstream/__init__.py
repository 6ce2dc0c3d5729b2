"""tickstream: server-sent event push channel with a reconnecting client store."""

__version__ = "0.1.0"
