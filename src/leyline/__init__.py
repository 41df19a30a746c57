"""leyline -- keep a local mirror of a shared standards corpus in sync."""

__version__ = "0.4.0"
