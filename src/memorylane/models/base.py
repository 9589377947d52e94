"""Base helpers shared by memorylane models."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from uuid import uuid4

MAX_SLUG_LENGTH = 100

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("mem") -> "mem_a1b2c3d4e5f6"
        generate_id("ent") -> "ent_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def slugify(text: str) -> str:
    """Normalize free text into a URL-safe slug.

    Lowercases, collapses every run of non-alphanumerics into a single dash,
    trims leading/trailing dashes, and caps the result at 100 characters.

    Examples:
        slugify("PostgreSQL") -> "postgresql"
        slugify("  Acme Corp, Inc. ") -> "acme-corp-inc"
    """
    slug = _NON_SLUG_CHARS.sub("-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")
