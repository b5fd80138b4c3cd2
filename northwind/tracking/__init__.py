"""
Change Tracking Module
"""
from .state import (
    TRACKING_FIELDS,
    Mergeable,
    Trackable,
    TrackableMixin,
    TrackingState,
    collection_fields,
    key_fields,
    navigation_fields,
    persisted_fields,
    version_field,
)
from .changes import (
    accept_changes,
    apply_modified_properties,
    has_changes,
    iter_graph,
    mark_added,
    mark_deleted,
    set_tracked,
    snapshot,
)
from .serialization import dump_graph, load_graph

__all__ = [
    "TRACKING_FIELDS",
    "Mergeable",
    "Trackable",
    "TrackableMixin",
    "TrackingState",
    "collection_fields",
    "key_fields",
    "navigation_fields",
    "persisted_fields",
    "version_field",
    "accept_changes",
    "apply_modified_properties",
    "has_changes",
    "iter_graph",
    "mark_added",
    "mark_deleted",
    "set_tracked",
    "snapshot",
    "dump_graph",
    "load_graph",
]
