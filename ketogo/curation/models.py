"""
Pydantic models for items flowing through the curation pipeline.

RawItem and CandidateItem only live for one run. ApprovedEntry and
ObjectEntry are what gets persisted; collections on disk are plain lists of
their JSON records so that unknown keys written by earlier versions survive
a merge untouched.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer

from ketogo.core.logging import get_logger
from ketogo.core.time import isoformat_utc

logger = get_logger(__name__)

AMAZON_SOURCE = "Amazon"


class Bucket(str, Enum):
    """Destination collections."""
    OBSERVATIONS = "observations"
    OBJECTS = "objects"


class RawItem(BaseModel):
    """Item as produced by a fetch collaborator."""
    source: str
    title: str = ""
    link: str = ""
    published_at: datetime
    summary: Optional[str] = None


class CandidateItem(RawItem):
    """RawItem with its fingerprint for one destination bucket."""
    fingerprint: str


class ApprovedEntry(BaseModel):
    """Persisted record of an admitted item."""

    model_config = ConfigDict(extra="allow")

    fingerprint: str = Field(..., min_length=1)
    source: str
    title: str = ""
    link: str = Field(..., min_length=1)
    published_at: datetime
    micro_judgment: Optional[str] = None
    admitted_at: Optional[datetime] = None

    @field_serializer("published_at", "admitted_at")
    def _serialize_dt(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(value) if value is not None else None

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateItem,
        micro_judgment: Optional[str] = None,
        admitted_at: Optional[datetime] = None,
        **extra: Any,
    ) -> "ApprovedEntry":
        return cls(
            fingerprint=candidate.fingerprint,
            source=candidate.source,
            title=candidate.title,
            link=candidate.link,
            published_at=candidate.published_at,
            micro_judgment=micro_judgment,
            admitted_at=admitted_at,
            **extra,
        )

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["ApprovedEntry"]:
        """Validate a persisted record, returning None when it is malformed."""
        try:
            return cls.model_validate(record)
        except ValidationError as e:
            logger.warning(f"Skipping malformed record {record.get('fingerprint', '?')}: {e.error_count()} errors")
            return None


class ObjectEntry(ApprovedEntry):
    """Approved entry of the objects collection."""
    price: Optional[float] = None
    currency: str = "EUR"
    image: Optional[str] = None
    asin: Optional[str] = None
    week: Optional[str] = None
    note: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict; ``week`` only appears on week-tagged preview entries."""
        record = super().to_record()
        if record.get("week") is None:
            record.pop("week", None)
        return record


class ProductCandidate(BaseModel):
    """Search result of the product-metadata collaborator."""
    asin: str
    title: str = ""
    price: Optional[float] = None
    currency: str = "EUR"
    image: Optional[str] = None
    detail_url: Optional[str] = None
