"""Guards applied before filing on send."""

from __future__ import annotations

import re
from collections.abc import Iterable

_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


def parse_email_domain(address: str | None) -> str:
    """Domain of ``user@domain`` or ``Name <user@domain>``; ``""`` if none."""
    trimmed = (address or "").strip()
    if not trimmed:
        return ""
    match = _ANGLE_ADDRESS.search(trimmed)
    cleaned = match.group(1) if match else trimmed
    at = cleaned.rfind("@")
    if at < 0:
        return ""
    return cleaned[at + 1 :].strip().lower()


def base_domain(domain: str | None) -> str:
    """Collapse subdomains: ``eu.example.com`` becomes ``example.com``."""
    normalized = (domain or "").strip().lower()
    if not normalized:
        return ""
    parts = normalized.split(".")
    if len(parts) <= 2:
        return normalized
    return ".".join(parts[-2:])


def is_internal_email(
    sender: str | None,
    recipients: Iterable[str],
    allowlist: Iterable[str] = (),
) -> bool:
    """Whether every recipient shares the sender's base domain or an allowlisted one."""
    recipient_list = list(recipients)
    if not recipient_list:
        return False

    internal = {base_domain(parse_email_domain(sender))}
    internal.update(base_domain(domain) for domain in allowlist)
    internal.discard("")
    if not internal:
        return False

    for recipient in recipient_list:
        domain = base_domain(parse_email_domain(recipient))
        if not domain or domain not in internal:
            return False
    return True


__all__ = ["base_domain", "is_internal_email", "parse_email_domain"]
