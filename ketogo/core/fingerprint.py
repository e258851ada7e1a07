"""Content-addressed identities and hash-seeded selection.

All deterministic "randomness" in the pipeline goes through ``hash_mod``:
the first 8 hex digits of a SHA-1 digest read as an unsigned integer.
Using the same primitive everywhere keeps editorial decisions reproducible
across runs and processes.
"""

import hashlib

# Namespace tags, one per destination collection
OBSERVATIONS_NS = "obs"
OBJECTS_NS = "obj"
AMAZON_NS = "object"

DELIMITER = "|"


def sha1_hex(text: str) -> str:
    """SHA-1 hex digest of a UTF-8 string."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def fingerprint(namespace: str, source: str, link: str) -> str:
    """
    Stable identity of an item inside one collection.

    Args:
        namespace: Collection tag (``obs``, ``obj``, ``object``)
        source: Display label of the origin feed or API
        link: Canonical URL (or external product id for Amazon objects)

    Returns:
        40 character hex string
    """
    return sha1_hex(DELIMITER.join([namespace or "", source or "", link or ""]))


def hash_int(text: str) -> int:
    """Integer seed from the first 32 bits of the SHA-1 digest."""
    return int(sha1_hex(text)[:8], 16)


def hash_mod(text: str, modulus: int) -> int:
    """Deterministic bucket of ``text`` in ``range(modulus)``."""
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    return hash_int(text) % modulus
