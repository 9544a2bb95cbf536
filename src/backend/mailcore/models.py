"""
In-memory representation of an email and the messages derived from it.
"""

import os
import random
import socket
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

REPLY_BANNER = "-------- Original message --------"
FORWARD_BANNER = "-------- Forwarded message --------"


def now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now(timezone.utc).astimezone()


@dataclass
class IdentitySource:
    """Process-wide inputs of Message-ID generation, replaceable in tests."""

    clock: Callable[[], datetime] = now
    pid: Callable[[], int] = os.getpid
    randrange: Callable[[int], int] = random.randrange
    hostname: Callable[[], str] = socket.gethostname


def make_id(identity: Optional[IdentitySource] = None) -> str:
    """
    Generate a Message-ID.

    Returns:
        ``<UTC timestamp.pid.random@hostname>``, e.g.
        ``<20240419100000.4242.1234@mail.example.com>``
    """
    identity = identity or IdentitySource()
    timestamp = identity.clock().astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")
    try:
        host = identity.hostname()
    except OSError:
        host = ""
    if not host:
        host = "localhost"
    return f"<{timestamp}.{identity.pid()}.{identity.randrange(100000)}@{host}>"


@dataclass
class Part:
    """An attachment: decoded file name and transfer-decoded bytes."""

    name: str = ""
    data: bytes = b""


@dataclass
class Message:
    """
    A parsed or to-be-sent email.

    ``sender`` holds the From address. ``headers`` holds every header not
    promoted to a field, decoded, with repeated names joined by a space.
    When the message only had an HTML body, ``body`` holds its text
    rendering and ``is_html`` is set.
    """

    sender: str = ""
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    return_path: str = ""
    id: str = field(default_factory=make_id)
    date: datetime = field(default_factory=now)
    is_html: bool = False
    html: str = ""
    parts: List[Part] = field(default_factory=list)

    def __post_init__(self):
        if not self.return_path:
            self.return_path = self.sender

    @classmethod
    def create(
        cls,
        sender: str,
        to: Optional[List[str]] = None,
        cc: Optional[List[str]] = None,
        subject: str = "",
        body: str = "",
        headers: Optional[Dict[str, str]] = None,
        identity: Optional[IdentitySource] = None,
    ) -> "Message":
        """Create a new message with a fresh Message-ID and the current date."""
        return cls(
            sender=sender,
            to=list(to or []),
            cc=list(cc or []),
            subject=subject,
            body=body,
            headers=dict(headers or {}),
            id=make_id(identity),
        )

    def receivers(self) -> str:
        """All recipients, To then Cc, comma separated."""
        return ", ".join([*self.to, *self.cc])

    def _thread_headers(self) -> Dict[str, str]:
        return {"In-Reply-To": self.id, "References": self.id}

    def reply(
        self, sender: str, body: str, cc: Optional[List[str]] = None
    ) -> "Message":
        """
        Build a reply to this message, addressed to its return path.

        The original body is quoted below ``body``, each line prefixed
        with ``>``. This message is left untouched.
        """
        subject = self.subject
        if not subject.lower().startswith("re:"):
            subject = f"Re: {subject}"

        quoted = "".join(f">{line}\n" for line in self.body.split("\n"))
        text = f"{body}\n\n{REPLY_BANNER}\n{quoted}"

        return Message.create(
            sender, [self.return_path], cc, subject, text, self._thread_headers()
        )

    def reply_all(self, sender: str, body: str) -> "Message":
        """Reply to the return path, copying everyone else once."""
        cc = []
        seen = set()
        if self.return_path != self.sender:
            cc.append(self.sender)
            seen.add(self.sender)
        for address in [*self.to, *self.cc]:
            if address not in seen:
                cc.append(address)
                seen.add(address)
        return self.reply(sender, body, cc)

    def forward(
        self,
        sender: str,
        to: List[str],
        cc: Optional[List[str]],
        body: str,
    ) -> "Message":
        """Build a forward of this message, its body appended unquoted."""
        subject = self.subject
        if not subject.lower().startswith("fwd:"):
            subject = f"Fwd: {subject}"

        text = f"{body}\n\n{FORWARD_BANNER}\n{self.body}"

        return Message.create(sender, to, cc, subject, text, self._thread_headers())
