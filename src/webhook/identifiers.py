"""WhatsApp identifier normalization.

Canonical user identifiers look like ``15551234567@c.us``. The messaging
client may also surface ``@lid`` identifiers, an internal alternate form
that the send operation does not accept. The same transform is applied to
inbound senders and outbound recipients.

The ``@lid`` mapping is best-effort: swapping the suffix only yields the
real phone number when the local part already is that number. The contact
``number`` reported by the client is the only authoritative source, so
``resolve_sender`` prefers it whenever it is available.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.webhook.models import Contact, IncomingMessage

USER_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"
ALTERNATE_SUFFIX = "@lid"
STATUS_BROADCAST = "status@broadcast"

_NON_DIGITS = re.compile(r"\D")


def normalize_identifier(raw: str) -> str:
    """Map a raw identifier to its canonical form. Never raises."""
    if "@" not in raw:
        return _NON_DIGITS.sub("", raw) + USER_SUFFIX
    if ALTERNATE_SUFFIX in raw:
        return raw.replace(ALTERNATE_SUFFIX, USER_SUFFIX)
    return raw


def is_group(identifier: str) -> bool:
    return identifier.endswith(GROUP_SUFFIX)


def resolve_sender(message: IncomingMessage, contact: Contact | None) -> str:
    """Canonical sender identifier for an inbound message."""
    candidate = message.from_
    if contact is not None and contact.id_serialized:
        candidate = contact.id_serialized
    if ALTERNATE_SUFFIX in candidate and contact is not None and contact.number:
        candidate = contact.number
    return normalize_identifier(candidate)
