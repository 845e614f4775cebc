"""Compare two Random Forest implementations on one labeled dataset."""

__version__ = "0.1.0"
