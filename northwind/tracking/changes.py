"""
Client-Side Change Tracking Helpers

Operations over an already-materialized entity graph. Nothing here touches
storage: relationships that are not loaded on an instance are skipped rather
than lazily loaded.
"""

from typing import Any, Dict, Iterable, Iterator, List, Tuple, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm.attributes import set_committed_value

from northwind.errors import InvalidChangeSetError
from northwind.tracking.state import TrackingState, key_fields, persisted_fields, version_field

GraphRoot = Union[Any, Iterable[Any]]


def loaded_relationships(entity: Any) -> Iterator[Tuple[Any, Any]]:
    """Yield (relationship property, value) for each relationship present on the instance."""
    state = sa_inspect(entity)
    for rel in state.mapper.relationships:
        if rel.key in state.dict:
            yield rel, state.dict[rel.key]


def iter_graph(root: GraphRoot) -> Iterator[Any]:
    """
    Walk an entity graph depth-first, yielding each instance once.

    Args:
        root: A single entity or an iterable of entities
    """
    stack: List[Any] = _roots(root)
    seen = set()
    while stack:
        entity = stack.pop()
        if id(entity) in seen:
            continue
        seen.add(id(entity))
        yield entity

        children = []
        for rel, value in loaded_relationships(entity):
            if rel.uselist:
                children.extend(value)
            elif value is not None:
                children.append(value)
        stack.extend(reversed(children))


def _roots(root: GraphRoot) -> List[Any]:
    if isinstance(root, (list, tuple, set)):
        return list(reversed(list(root)))
    return [root]


def set_tracked(entity: Any, **values: Any) -> None:
    """
    Assign property values and record them as modified.

    An Unchanged entity becomes Modified when a value actually changes.
    Added entities are inserted whole, so their changes are not recorded.

    Raises:
        InvalidChangeSetError: For unknown property names, Deleted entities,
            the row version, or the key of an entity that is not Added
    """
    entity_type = type(entity)
    fields = set(persisted_fields(entity_type))
    fields.discard(version_field(entity_type))
    if entity.tracking_state != TrackingState.ADDED:
        fields -= set(key_fields(entity_type))
    unknown = sorted(set(values) - fields)
    if unknown:
        raise InvalidChangeSetError(
            f"{entity_type.__name__} has no assignable properties {unknown}", entity
        )
    if entity.tracking_state == TrackingState.DELETED:
        raise InvalidChangeSetError(f"Cannot modify deleted {entity_type.__name__}", entity)

    state = sa_inspect(entity)
    for name, value in values.items():
        if name in state.dict and state.dict[name] == value:
            continue
        setattr(entity, name, value)
        if entity.tracking_state == TrackingState.ADDED:
            continue
        entity.tracking_state = TrackingState.MODIFIED
        entity.modified_properties.add(name)


def mark_added(entity: Any, include_children: bool = False) -> None:
    """
    Flag an entity for insertion.

    Args:
        entity: The entity to insert
        include_children: Also flag Unchanged entities in its one-to-many
            collections, recursively; references to parents are left alone
    """
    entity.tracking_state = TrackingState.ADDED
    entity.modified_properties.clear()
    if not include_children:
        return
    for rel, value in loaded_relationships(entity):
        if not rel.uselist:
            continue
        for child in value:
            if child.tracking_state == TrackingState.UNCHANGED:
                mark_added(child, include_children=True)


def mark_deleted(entity: Any) -> None:
    """Flag an entity for deletion."""
    entity.tracking_state = TrackingState.DELETED
    entity.modified_properties.clear()


def has_changes(root: GraphRoot) -> bool:
    """Whether any entity in the graph has a pending mutation."""
    return any(e.tracking_state != TrackingState.UNCHANGED for e in iter_graph(root))


def accept_changes(root: GraphRoot) -> None:
    """
    Reset every entity in the graph to Unchanged.

    Deleted children are dropped from the collections holding them. Collections
    are replaced without change history so the store sees no new mutation.
    """
    entities = list(iter_graph(root))
    for entity in entities:
        for rel, value in list(loaded_relationships(entity)):
            if not rel.uselist:
                continue
            kept = [child for child in value if child.tracking_state != TrackingState.DELETED]
            if len(kept) != len(value):
                set_committed_value(entity, rel.key, kept)

    for entity in entities:
        entity.tracking_state = TrackingState.UNCHANGED
        entity.modified_properties = set()


def snapshot(entity: Any) -> Dict[str, Any]:
    """Copy of the persisted property values currently held by an entity."""
    state = sa_inspect(entity)
    return {
        name: state.dict[name]
        for name in persisted_fields(type(entity))
        if name in state.dict
    }


def apply_modified_properties(prior: Dict[str, Any], entity: Any) -> Dict[str, Any]:
    """
    Overlay the entity's modified properties onto a prior snapshot.

    Returns a new snapshot; the prior one is left untouched.
    """
    current = snapshot(entity)
    result = dict(prior)
    for name in entity.modified_properties:
        result[name] = current.get(name)
    return result
