"""FinTrack: personal finance tracker synchronizing bank data from TrueLayer."""

__version__ = "0.1.0"
