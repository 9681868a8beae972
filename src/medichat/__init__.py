"""MediChat gateway — authenticated text/voice chat relay with bounded memory."""

__version__ = "0.1.0"
