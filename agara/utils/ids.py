"""Identifier utilities."""

from __future__ import annotations

import secrets
import string


def generate_nanoid(size: int = 8) -> str:
  """Return a short non-sequential id for ephemeral client-side objects."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))
