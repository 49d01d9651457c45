"""Version Identifier - derives the immutable build-version token.

The token combines the CI build counter with the abbreviated source revision,
e.g. ``142-3f2a9c1``. It sorts by build counter and is traceable back to the
exact commit.
"""

from __future__ import annotations

import re

from hexdeploy.kernel.exceptions import ValidationError

SHORT_REVISION_LENGTH = 7
LATEST = "latest"

_REVISION_PATTERN = re.compile(r"^[0-9a-fA-F]{7,40}$")


def derive_build_version(source_revision: str, build_number: int) -> str:
    """Derive the build-version token from a source revision and build counter.

    Parameters
    ----------
    source_revision : str
        Git commit hash (7 to 40 hex characters)
    build_number : int
        Monotonic CI build counter (>= 0)

    Returns
    -------
    str
        Token of the form ``"{build_number}-{short_revision}"``

    Raises
    ------
    ValidationError
        If the revision is not a hex commit hash or the counter is negative

    Examples
    --------
    >>> derive_build_version("3F2A9C1D8E", 142)
    '142-3f2a9c1'
    """
    revision = source_revision.strip()
    if not _REVISION_PATTERN.match(revision):
        raise ValidationError("source_revision", "must be a 7-40 character hex hash", revision)
    if build_number < 0:
        raise ValidationError("build_number", "must be non-negative", build_number)
    return f"{build_number}-{revision[:SHORT_REVISION_LENGTH].lower()}"


def normalize_requested_version(version: str | None) -> str | None:
    """Normalize an operator-requested version; empty or ``latest`` means None."""
    if version is None:
        return None
    cleaned = version.strip()
    if not cleaned or cleaned.lower() == LATEST:
        return None
    return cleaned
