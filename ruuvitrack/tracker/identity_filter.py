"""Allow-list filtering of sensor identities."""

from typing import Iterable, Sequence, Tuple


def normalize_identity(identity: str) -> str:
    """Canonical form used for every identity comparison."""
    return identity.strip().upper()


def normalize_allow_list(entries: Iterable[str]) -> Tuple[str, ...]:
    """Upper-case and de-duplicate configured MAC addresses, keeping order."""
    seen = []
    for entry in entries:
        normalized = normalize_identity(str(entry))
        if normalized and normalized not in seen:
            seen.append(normalized)
    return tuple(seen)


def is_in_scope(identity: str, allow_list: Sequence[str]) -> bool:
    """Check whether readings from this identity should be delivered.

    An empty allow-list admits every sensor. The allow-list is expected to
    be normalized already (see normalize_allow_list).
    """
    if not allow_list:
        return True
    return normalize_identity(identity) in allow_list
