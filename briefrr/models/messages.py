"""
Channel message models for the relay protocol
One GenerationRequest in, any number of chunks, then exactly one done or error out
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from ..exceptions import ProtocolError

# Error codes carried by terminal error messages
INVALID_KEY = "INVALID_KEY"
RATE_LIMITED = "RATE_LIMITED"
NETWORK_ERROR = "NETWORK_ERROR"


@dataclass(frozen=True)
class GenerationRequest:
    """Single-turn generation request sent from the session to the relay"""
    credential: str
    prompt: str
    system_prompt: str

    def __post_init__(self):
        """Validate request data"""
        if not self.credential:
            raise ValueError("Credential is required")
        if not self.prompt:
            raise ValueError("Prompt is required")

    def to_dict(self) -> Dict[str, str]:
        """Wire form of the request"""
        return {
            "credential": self.credential,
            "prompt": self.prompt,
            "systemPrompt": self.system_prompt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GenerationRequest':
        """Parse a request received on a channel"""
        if not isinstance(data, dict):
            raise ProtocolError("Request must be an object")
        try:
            return cls(
                credential=data["credential"],
                prompt=data["prompt"],
                system_prompt=data.get("systemPrompt", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed request: {e}") from e


@dataclass(frozen=True)
class ChunkMessage:
    """Incremental piece of generated text"""
    text: str
    type: str = "chunk"

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class DoneMessage:
    """Terminal message: the stream completed"""
    type: str = "done"

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type}


@dataclass(frozen=True)
class ErrorMessage:
    """Terminal message: the stream failed with a classified error string"""
    error: str
    type: str = "error"

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "error": self.error}


StreamMessage = Union[ChunkMessage, DoneMessage, ErrorMessage]


def is_terminal(message: StreamMessage) -> bool:
    """Done and Error end a stream"""
    return isinstance(message, (DoneMessage, ErrorMessage))


def parse_stream_message(data: Dict[str, Any]) -> StreamMessage:
    """Decode a wire dict into a StreamMessage"""
    if not isinstance(data, dict):
        raise ProtocolError("Stream message must be an object")

    message_type = data.get("type")
    if message_type == "chunk":
        return ChunkMessage(text=str(data.get("text", "")))
    if message_type == "done":
        return DoneMessage()
    if message_type == "error":
        return ErrorMessage(error=str(data.get("error", "")))

    raise ProtocolError(f"Unknown stream message type: {message_type!r}")
