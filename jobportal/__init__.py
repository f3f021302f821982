"""Job catalog crawler: fills the Jobs/Companies store from search results."""

__version__ = "0.1.0"
