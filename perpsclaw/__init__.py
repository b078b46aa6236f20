"""PerpsClaw - adaptive decision engine for perpetual-futures trading agents."""

__version__ = "0.1.0"
