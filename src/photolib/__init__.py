"""PhotoLib - Personal photo gallery backend with thumbnail generation."""

__version__ = "0.1.0"
