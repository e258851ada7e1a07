"""Deterministic content-approval pipeline.

This package contains modules for:
- Item models (models.py)
- Admission policies (filters.py)
- Commentary providers (commentary.py)
- Period quotas (quota.py)
- Merge and persistence (merge.py)
"""

from .filters import ObjectPolicy, ObservationPolicy, PreviewObjectPolicy, Reason, Verdict
from .models import ApprovedEntry, Bucket, CandidateItem, ObjectEntry, RawItem

__all__ = [
    'ApprovedEntry',
    'Bucket',
    'CandidateItem',
    'ObjectEntry',
    'ObjectPolicy',
    'ObservationPolicy',
    'PreviewObjectPolicy',
    'RawItem',
    'Reason',
    'Verdict',
]
