"""Response classification for cryptic help text."""

from .parser import ResponseClassifier, classify, normalize, parse

__all__ = ["ResponseClassifier", "classify", "normalize", "parse"]
