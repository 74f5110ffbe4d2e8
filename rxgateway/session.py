"""Mutable record of one logical gateway session."""

from dataclasses import dataclass, field

from .codec import encode_resume
from .model import ReadyEvent


@dataclass
class SessionState:
    """Session identity and sequence tracking.

    Only the client mutates this record. A full reconnect builds a new
    instance instead of reusing the old one.

    Attributes:
        token: Authentication token.
        identify: The identify frame, shared unchanged by every session of
            one client.
        resume_endpoint: Endpoint used to resume this session.
        session_id: Set by Ready or a resume, cleared by InvalidateSession.
        last_sequence: Sequence of the latest Dispatch or Heartbeat seen,
            ``None`` before the first one.
    """

    token: str
    identify: dict = field(repr=False)
    resume_endpoint: str
    session_id: str | None = None
    last_sequence: int | None = None

    @classmethod
    def from_ready(
        cls,
        token: str,
        identify: dict,
        endpoint: str,
        sequence: int,
        ready: ReadyEvent,
    ) -> "SessionState":
        state = cls(token=token, identify=identify, resume_endpoint=endpoint)
        state.adopt(ready, sequence)
        return state

    def adopt(self, ready: ReadyEvent, sequence: int) -> None:
        """Take over the identity announced by a Ready dispatch."""
        self.session_id = ready.session_id or None
        self.resume_endpoint = ready.resume_url or self.resume_endpoint
        self.last_sequence = sequence

    def observe(self, sequence: int) -> None:
        self.last_sequence = sequence

    def invalidate(self) -> None:
        self.session_id = None

    @property
    def resumable(self) -> bool:
        return self.session_id is not None

    def resume_frame(self) -> dict:
        """Build the resume request from the values recorded right now."""
        if self.session_id is None:
            raise ValueError("cannot resume without a session id")
        return encode_resume(self.token, self.session_id, self.last_sequence)
