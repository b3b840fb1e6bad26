"""Response-shape decoding for the cryptic endpoint.

The body is decoded exactly once, at the gateway boundary, into either
``ExpectedShape`` or ``UnexpectedShape``; nothing downstream inspects raw
payload fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class _CrypticResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: Optional[str] = None
    response: Optional[str] = None


class _Output(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cryptic_response: _CrypticResponse = Field(alias="crypticResponse")


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore")

    output: _Output


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: _Model


@dataclass(frozen=True)
class ExpectedShape:
    """``{model: {output: {crypticResponse: {command, response}}}}``."""

    command_echo: str
    response_text: str

    @property
    def has_content(self) -> bool:
        return bool(self.response_text.strip())


@dataclass(frozen=True)
class UnexpectedShape:
    reason: str


DecodedResponse = Union[ExpectedShape, UnexpectedShape]


def decode_payload(payload: Any) -> DecodedResponse:
    """Decode a parsed JSON body into the tagged variant."""
    if not isinstance(payload, dict):
        return UnexpectedShape(reason=f"body is {type(payload).__name__}, expected object")
    try:
        envelope = _Envelope.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return UnexpectedShape(reason=f"{location or 'body'}: {first.get('msg', 'invalid')}")

    cryptic = envelope.model.output.cryptic_response
    return ExpectedShape(
        command_echo=cryptic.command or "",
        response_text=cryptic.response or "",
    )


__all__ = ["DecodedResponse", "ExpectedShape", "UnexpectedShape", "decode_payload"]
