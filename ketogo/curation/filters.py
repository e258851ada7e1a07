"""
Admission policies for the two destination collections.

Every policy is a pure function of the item: reject vocabularies first,
then an allow vocabulary, then (except for previews) a hash-seeded quota
gate that admits a fixed share of neutral titles. Re-running the pipeline
over the same feeds therefore always reproduces the same editorial choices.
Matching is case-insensitive substring matching on the title.
"""

from enum import Enum
from typing import Iterable, NamedTuple, Optional, Sequence

from ketogo.core.fingerprint import hash_mod
from ketogo.curation.models import RawItem

DEFAULT_QUOTA_THRESHOLD = 20
QUOTA_MODULUS = 100

# Violence, tragedy, politics, outrage, promotional and how-to content
HARD_REJECT_TERMS = (
    "killed", "dead", "death", "shoot", "shooting", "war", "bomb", "attack", "terror", "rape",
    "murder", "suicide", "hostage", "injured", "victim", "earthquake", "flood", "fire",
    "politic", "election", "president", "minister", "parliament", "senate", "congress",
    "opinion", "editorial", "analysis", "explainer", "why you should", "how to", "tips",
    "best", "top ", "deal", "discount", "sponsored", "promo", "buy now", "affiliate",
)

# Live coverage and recap churn
LOW_SIGNAL_TERMS = ("breaking", "live", "update", "highlights", "recap")

# Observational oddity and accidental design
OBSERVATION_ALLOW_TERMS = (
    "odd", "weird", "strange", "bizarre", "absurd", "of course", "apparently", "somehow",
    "unexpected", "mildly", "satisfying", "design", "prototype", "invention", "product",
    "nobody asked", "this exists",
)

# Software, services and finance: nothing you can hold
NON_PHYSICAL_TERMS = (
    "software", "saas", "subscription", "startup", "funding", "raises $", "valuation",
    "crypto", "bitcoin", "blockchain", "nft", "stock", "ipo", "investor", "bank", "loan",
    "insurance", "mortgage", "app store", "mobile app", "web app", "ios app", "android",
    "open source", "platform", "plugin", "browser extension", "chatbot", "llm",
    "podcast", "newsletter", "webinar", "online course",
)

# Tangible artefacts: furniture, tableware, wearables, gadgets
PHYSICAL_NOUNS = (
    "lamp", "light fixture", "chair", "stool", "sofa", "bench", "shelf", "shelving", "desk",
    "coffee table", "side table", "dining table", "cabinet", "cupboard", "furniture",
    "mug", "cup", "bowl", "plate", "tableware", "glassware", "bottle", "kettle", "teapot",
    "spoon", "fork", "knife", "cutlery", "vase", "planter", "clock", "watch",
    "shoe", "sneaker", "boot", "jacket", "coat", "backpack", "bag", "wallet", "wearable",
    "eyewear", "sunglasses", "gadget", "speaker", "headphone", "keyboard", "camera", "radio",
    "toaster", "opener", "umbrella", "toy", "tool",
)

OBJECT_SIGNAL_TERMS = ("design", "prototype", "product", "invention", "concept", "object")

OBJECT_ALLOW_TERMS = PHYSICAL_NOUNS + OBJECT_SIGNAL_TERMS


class Reason(str, Enum):
    """Why an item was admitted or rejected."""
    APPROVED = "approved"
    HARD_REJECT = "hard_reject"
    LOW_SIGNAL = "low_signal"
    NO_CLEAR_FIT = "no_clear_fit"
    NO_LINK = "no_link"
    SOURCE_NOT_ALLOWED = "source_not_allowed"


class Verdict(NamedTuple):
    """Outcome of an admission policy."""
    admit: bool
    reason: Reason


def contains_any(text: str, terms: Iterable[str]) -> bool:
    """True if any term occurs in ``text`` (already lowercased)."""
    return any(term in text for term in terms)


class AdmissionPolicy:
    """
    Layered reject -> allow -> quota policy.

    Subclasses only swap vocabularies and the namespace of the quota hash.
    An empty link is a terminal rejection, whatever the title says.
    """

    name = "base"
    reject_terms: Sequence[str] = HARD_REJECT_TERMS
    low_signal_terms: Sequence[str] = LOW_SIGNAL_TERMS
    allow_terms: Sequence[str] = ()
    quota_prefix: str = ""
    quota_fallback: bool = True

    def __init__(self, quota_threshold: int = DEFAULT_QUOTA_THRESHOLD):
        if not 0 <= quota_threshold <= QUOTA_MODULUS:
            raise ValueError(f"quota_threshold must be within 0..{QUOTA_MODULUS}")
        self.quota_threshold = quota_threshold

    def quota_key(self, item: RawItem) -> str:
        return f"{self.quota_prefix}{item.title or ''}|{item.link or ''}"

    def quota_bucket(self, item: RawItem) -> int:
        """Hash bucket in 0..99 used by the quota gate."""
        return hash_mod(self.quota_key(item), QUOTA_MODULUS)

    def precheck(self, item: RawItem) -> Optional[Verdict]:
        """Hook for policy-specific gates evaluated before the vocabularies."""
        return None

    def decide(self, item: RawItem) -> Verdict:
        if not (item.link or "").strip():
            return Verdict(False, Reason.NO_LINK)

        early = self.precheck(item)
        if early is not None:
            return early

        title = (item.title or "").lower()

        if contains_any(title, self.reject_terms):
            return Verdict(False, Reason.HARD_REJECT)

        if contains_any(title, self.low_signal_terms):
            return Verdict(False, Reason.LOW_SIGNAL)

        if contains_any(title, self.allow_terms):
            return Verdict(True, Reason.APPROVED)

        if self.quota_fallback and self.quota_bucket(item) < self.quota_threshold:
            return Verdict(True, Reason.APPROVED)

        return Verdict(False, Reason.NO_CLEAR_FIT)


class ObservationPolicy(AdmissionPolicy):
    """Light observational oddities for the observations feed."""

    name = "observation"
    allow_terms = OBSERVATION_ALLOW_TERMS


class ObjectPolicy(AdmissionPolicy):
    """Tangible objects: excludes software, services and finance."""

    name = "object"
    reject_terms = HARD_REJECT_TERMS + NON_PHYSICAL_TERMS
    allow_terms = OBJECT_ALLOW_TERMS
    quota_prefix = "obj|"


class PreviewObjectPolicy(ObjectPolicy):
    """
    Stricter object policy for the weekly preview.

    Only design-oriented sources qualify, and only titles naming a
    physical artefact are admitted. There is no quota fallback.
    """

    name = "preview_object"
    allow_terms = PHYSICAL_NOUNS
    quota_fallback = False

    def __init__(self, allowed_sources: Iterable[str], quota_threshold: int = DEFAULT_QUOTA_THRESHOLD):
        super().__init__(quota_threshold)
        self.allowed_sources = {s.strip().lower() for s in allowed_sources if s and s.strip()}

    def precheck(self, item: RawItem) -> Optional[Verdict]:
        if (item.source or "").strip().lower() not in self.allowed_sources:
            return Verdict(False, Reason.SOURCE_NOT_ALLOWED)
        return None
