"""Identifier validation for mailbox purge requests.

doveadm accepts ``*`` and ``?`` in the ``-u`` user mask, so a single purge
call with an attacker-chosen address such as ``*@example.com`` would purge
every matching mailbox. Identifiers are checked here before they are stored
and again right before they are handed to the purge command.
"""

from __future__ import annotations

from mailbox_janitor.core.errors import ValidationError

WILDCARD_CHARS = frozenset("*?")
SEPARATOR = "@"
# Shell and quoting metacharacters plus whitespace
FORBIDDEN_CHARS = frozenset(";|&$`\\\"'<>(){}[]! \n\r\t")


def _has_control_chars(value: str) -> bool:
    return any(ord(c) < 0x20 or ord(c) == 0x7F for c in value)


def validate_identifier(identifier: object) -> None:
    """Validate a mailbox identifier for storage and purge.

    Args:
        identifier: Raw identifier as received (untrusted).

    Raises:
        ValidationError: If the identifier is empty, contains wildcard
            characters, does not contain exactly one ``@``, or contains shell
            metacharacters, whitespace or control characters.
    """
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(identifier, "empty identifier")

    if any(c in WILDCARD_CHARS for c in identifier):
        raise ValidationError(identifier, "contains wildcard characters")

    if identifier.count(SEPARATOR) != 1:
        raise ValidationError(identifier, "invalid format")

    if any(c in FORBIDDEN_CHARS for c in identifier) or _has_control_chars(identifier):
        raise ValidationError(identifier, "contains forbidden characters")


def is_valid_identifier(identifier: object) -> bool:
    """Return True if validate_identifier() accepts the identifier."""
    try:
        validate_identifier(identifier)
    except ValidationError:
        return False
    return True
