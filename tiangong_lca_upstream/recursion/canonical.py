"""Canonical keys used to detect repeated requirements."""

from __future__ import annotations

DEFAULT_KEY_LENGTH = 100


def canonical_key(text: str, length: int = DEFAULT_KEY_LENGTH) -> str:
    """Lower-case, trim and truncate ``text`` to ``length`` characters.

    Requirements sharing the same prefix collapse onto one key. Whitespace exposed by the
    truncation is stripped as well, so ``canonical_key(canonical_key(t)) == canonical_key(t)``.
    """
    if length < 1:
        raise ValueError("Canonical key length must be positive")
    return (text or "").strip().lower()[:length].rstrip()
