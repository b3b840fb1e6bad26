"""crypticdocs: help-text extraction for cryptic reservation terminals."""

__version__ = "0.1.0"
