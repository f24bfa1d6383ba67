"""Resume to job-post compatibility analysis."""

__version__ = "0.1.0"
