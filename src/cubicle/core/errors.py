"""Tagged error kinds raised by the container-assignment engine.

Every error carries a stable ``kind`` string so that the message
dispatcher can hand it back to the UI collaborator verbatim, without the
collaborator having to know Python exception types.
"""

from __future__ import annotations

from typing import Any, ClassVar


class CubicleError(Exception):
    """Base class for all recoverable engine errors."""

    kind: ClassVar[str] = "Error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidHost(CubicleError):
    """Host is empty, syntactically invalid, or an IP literal."""

    kind = "InvalidHost"


class MalformedRule(CubicleError):
    """A suffix rule string has an unparseable prefix or pattern."""

    kind = "MalformedRule"


class DuplicateRule(CubicleError):
    """A rule collides with one already owned by another container."""

    kind = "DuplicateRule"


class NotFound(CubicleError):
    """Unknown container id."""

    kind = "NotFound"


class Ambiguous(CubicleError):
    """Two candidates tied on kind and specificity.

    Never surfaced to the user: the coordinator treats it as "no
    reassignment".
    """

    kind = "Ambiguous"


class AlreadyRecording(CubicleError):
    kind = "AlreadyRecording"


class NotRecording(CubicleError):
    kind = "NotRecording"


class RefreshFailed(CubicleError):
    """Fetching or parsing a new public suffix list failed.

    The previously loaded table stays authoritative.
    """

    kind = "RefreshFailed"


class InvalidPreference(CubicleError):
    kind = "InvalidPreference"


class NotReady(CubicleError):
    """An event arrived before the engine finished initialising."""

    kind = "NotReady"


class UnsupportedVersion(CubicleError):
    kind = "UnsupportedVersion"


class MalformedRequest(CubicleError):
    """An inbound message does not fit any known request shape."""

    kind = "MalformedRequest"
