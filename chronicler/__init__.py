"""Chronicler: AI game master for Chronicles of the Omuns character creation."""

__version__ = "0.1.0"
