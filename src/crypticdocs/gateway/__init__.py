"""Cryptic command gateway."""

from .client import CommandGateway, build_payload, coarse_response_type
from .history import HistoryEntry, RequestHistory
from .shapes import DecodedResponse, ExpectedShape, UnexpectedShape, decode_payload

__all__ = [
    "CommandGateway",
    "DecodedResponse",
    "ExpectedShape",
    "HistoryEntry",
    "RequestHistory",
    "UnexpectedShape",
    "build_payload",
    "coarse_response_type",
    "decode_payload",
]
