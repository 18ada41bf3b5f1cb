from .base import UnitResult, assignment_record, sharing_link_record
from .sites import SiteEnumerator
from .permissions import PermissionCollector
from .sharing import SharingLinkInspector
from .libraries import LibraryWalker
from .aggregator import ResultAggregator, filter_records, is_externally_relevant

__all__ = [
    "UnitResult",
    "assignment_record",
    "sharing_link_record",
    "SiteEnumerator",
    "PermissionCollector",
    "SharingLinkInspector",
    "LibraryWalker",
    "ResultAggregator",
    "filter_records",
    "is_externally_relevant",
]
