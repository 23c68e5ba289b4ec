from dataclasses import dataclass
from typing import Union


class ProtocolViolation(ValueError):
    """Raised when a payload does not match any protocol message shape."""


@dataclass(frozen=True)
class Elect:
    candidate: int

    def __str__(self):
        return f"ELECT {self.candidate}"


@dataclass(frozen=True)
class Leader:
    leader: int

    def __str__(self):
        return f"LEADER {self.leader}"


@dataclass(frozen=True)
class ForwardTo:
    """Relay envelope carrying a protocol payload to a non-adjacent node."""
    target: int
    inner: "Payload"

    def __str__(self):
        return f"FORWARDTO {self.target} {self.inner}"


Payload = Union[Elect, Leader, ForwardTo]


@dataclass(frozen=True)
class Message:
    sender: int
    recipient: int
    payload: Payload
    forward: bool = False


def _parse_id(token: str, text: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise ProtocolViolation(f"invalid node id {token!r} in payload {text!r}") from None


def parse_payload(text: str) -> Payload:
    """
    Decode the wire form of a payload.

    Supported forms:
        ELECT <id>
        LEADER <id>
        FORWARDTO <target> <payload>
    """
    parts = text.split()
    if not parts:
        raise ProtocolViolation("empty payload")

    kind = parts[0]
    if kind == "ELECT" and len(parts) == 2:
        return Elect(_parse_id(parts[1], text))
    if kind == "LEADER" and len(parts) == 2:
        return Leader(_parse_id(parts[1], text))
    if kind == "FORWARDTO" and len(parts) >= 3:
        inner = parse_payload(" ".join(parts[2:]))
        if isinstance(inner, ForwardTo):
            raise ProtocolViolation(f"nested relay envelope in {text!r}")
        return ForwardTo(_parse_id(parts[1], text), inner)
    raise ProtocolViolation(f"malformed payload {text!r}")

