"""Weekly product-search query rotation and candidate filters.

The queries searched in a given week are a pure function of the ISO
year-week of the UTC date, so re-running the weekly job inside the same
week searches the same things.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Union

from ketogo.core.fingerprint import hash_int
from ketogo.core.time import week_label
from ketogo.curation.models import ProductCandidate

ROTATION_STRIDE = 101

# "Odd but usable" searches for the Italian marketplace
QUERY_POOL = (
    "cucina utensile insolito",
    "organizzatore scrivania strano",
    "gadget casa intelligente semplice",
    "attrezzo manuale particolare",
    "accessorio bagno insolito",
    "luce lampada design funzionale",
    "supporto telefono scrivania strano",
    "apribottiglie insolito",
    "tagliaverdure particolare",
    "misurino cucina strano",
)

# Obvious junk: joke gifts, adult items, costumes, speculative assets
TITLE_BLOCK = (
    "regalo divertente",
    "scherzo",
    "prank",
    "sexy",
    "adult",
    "costume",
    "halloween",
    "porn",
    "nft",
    "crypto",
)

PRICE_MIN_EUR = 5.0
PRICE_MAX_EUR = 25.0


def pick_queries(
    when: Union[date, datetime],
    count: int = 3,
    pool: Sequence[str] = QUERY_POOL,
) -> List[str]:
    """
    Queries for the week containing ``when``.

    The seed is the 32-bit hash of the week label; entry ``i`` is
    ``pool[(seed + i * 101) % len(pool)]``.

    The label is zero-padded ISO (``2024-W03``), so weeks 1-9 rotate
    differently from schedules seeded with unpadded labels (``2024-W3``).
    """
    if not pool or count <= 0:
        return []

    seed = hash_int(week_label(when))
    return [pool[(seed + i * ROTATION_STRIDE) % len(pool)] for i in range(count)]


def is_blocked_title(title: str, block_list: Sequence[str] = TITLE_BLOCK) -> bool:
    lowered = (title or "").lower()
    return any(term in lowered for term in block_list)


def in_price_band(
    price: Optional[float],
    low: float = PRICE_MIN_EUR,
    high: float = PRICE_MAX_EUR,
) -> bool:
    """True for a numeric price inside the inclusive band."""
    if price is None or isinstance(price, bool) or not isinstance(price, (int, float)):
        return False
    return low <= price <= high


def is_good_candidate(
    product: ProductCandidate,
    low: float = PRICE_MIN_EUR,
    high: float = PRICE_MAX_EUR,
    block_list: Sequence[str] = TITLE_BLOCK,
) -> bool:
    """Non-empty, unblocked title and a price inside the band."""
    if not product.title or not product.title.strip():
        return False
    if is_blocked_title(product.title, block_list):
        return False
    return in_price_band(product.price, low, high)
