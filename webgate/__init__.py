"""Multi-page accessibility, performance and visual regression gate."""

__version__ = "0.4.0"
