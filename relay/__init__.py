"""relay: prepare release branches and publish CI artifacts."""

__version__ = "0.3.0"
