"""
Applying Tracked Entity Graphs to the Store

A detached graph arrives with per-entity tracking metadata. It is applied to
a session as follows:

- Unchanged, Modified and Deleted entities are attached as persistent
  without a SELECT (their primary key must be present)
- Modified entities have exactly their modified properties flagged dirty,
  so the UPDATE writes only those columns (all non-key columns present when the
  list is empty); a Modified entity with nothing writable is rejected
- Added entities are inserted; integer surrogate keys of 0 are cleared so
  the database assigns them, and foreign keys are synchronized from their
  related entities at flush time
- Deleted entities are deleted; a DELETE that matches no row is a conflict
- A stored row may appear only once in a graph; repeats must be references

Products are versioned: their UPDATE and DELETE statements are qualified
with the incoming row version and a mismatch surfaces as
ConcurrencyConflictError. Nothing here decides conflict resolution.
"""

import warnings
from typing import Any, Dict, List, Tuple

import structlog
from sqlalchemy import Integer
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError, SAWarning
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified, set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from northwind.errors import (
    ConcurrencyConflictError,
    ConstraintViolationError,
    InvalidChangeSetError,
)
from northwind.tracking import (
    TrackingState,
    accept_changes,
    iter_graph,
    key_fields,
    persisted_fields,
    version_field,
)
from northwind.tracking.changes import GraphRoot, loaded_relationships

logger = structlog.get_logger(__name__)

# Emitted instead of StaleDataError when a DELETE on an unversioned table matches no row
_MISSING_ROW_DELETE = r"DELETE statement on table .* expected to delete"


def _validate(entity: Any) -> None:
    entity_type = type(entity)
    if entity.tracking_state == TrackingState.MODIFIED:
        unknown = sorted(set(entity.modified_properties) - set(persisted_fields(entity_type)))
        if unknown:
            raise InvalidChangeSetError(
                f"{entity_type.__name__} has no persisted properties {unknown}", entity
            )
        _writable_properties(entity)

    if entity.tracking_state == TrackingState.ADDED:
        return

    state = sa_inspect(entity)
    if state.key is not None:
        return
    if any(state.dict.get(k) is None for k in key_fields(entity_type)):
        raise InvalidChangeSetError(
            f"{entity_type.__name__} in state {entity.tracking_state.name} has no primary key",
            entity,
        )

    version_key = version_field(entity_type)
    if version_key is not None and entity.tracking_state != TrackingState.UNCHANGED:
        if state.dict.get(version_key) is None:
            # Falling back to the stored version would skip the conflict check
            raise InvalidChangeSetError(
                f"{entity_type.__name__} in state {entity.tracking_state.name} has no {version_key}",
                entity,
            )


def _check_identities(entities: List[Any]) -> None:
    """A graph must hold at most one instance per stored row; repeats travel as references."""
    seen: Dict[Tuple[Any, ...], Any] = {}
    for entity in entities:
        state = sa_inspect(entity)
        if state.key is not None:
            identity = (state.key[0],) + tuple(state.key[1])
        else:
            values = tuple(state.dict.get(k) for k in key_fields(type(entity)))
            if entity.tracking_state == TrackingState.ADDED and any(v in (None, 0) for v in values):
                continue
            identity = (type(entity),) + values
        if identity in seen:
            raise InvalidChangeSetError(
                f"{type(entity).__name__} with key {list(identity[1:])} appears more than once in the graph",
                entity,
            )
        seen[identity] = entity


def _prepare_insert(entity: Any) -> None:
    state = sa_inspect(entity)
    mapper = state.mapper
    if len(mapper.primary_key) == 1:
        column = mapper.primary_key[0]
        key = mapper.get_property_by_column(column).key
        if isinstance(column.type, Integer) and state.dict.get(key) == 0:
            set_committed_value(entity, key, None)

    if mapper.version_id_col is not None:
        # New rows always start from the first version, whatever the client sent
        key = mapper.get_property_by_column(mapper.version_id_col).key
        set_committed_value(entity, key, mapper.version_id_generator(None))


def _rewire_added(entity: Any) -> None:
    """
    Give relationships that involve an Added entity change history.

    The unit of work only synchronizes foreign keys for related objects that
    were added to a relationship, not for committed values. Each pair is
    rewired from one side only; the backref handles the inverse.
    """
    is_added = entity.tracking_state == TrackingState.ADDED
    for rel, value in list(loaded_relationships(entity)):
        if rel.uselist:
            children = list(value)
            if is_added or any(c.tracking_state == TrackingState.ADDED for c in children):
                # Children appearing as added to the collection have their
                # pending delete cancelled by the unit of work
                committed = [
                    c for c in children
                    if c.tracking_state == TrackingState.DELETED
                    or (not is_added and c.tracking_state != TrackingState.ADDED)
                ]
                set_committed_value(entity, rel.key, committed)
                setattr(entity, rel.key, children)
            continue

        if value is None or entity.tracking_state == TrackingState.DELETED:
            continue
        if not (is_added or value.tracking_state == TrackingState.ADDED):
            continue
        reverse = rel.back_populates
        if reverse:
            reverse_value = sa_inspect(value).dict.get(reverse)
            if reverse_value is not None and any(c is entity for c in reverse_value):
                # The collection side is rewired instead
                continue
        set_committed_value(entity, rel.key, None)
        setattr(entity, rel.key, value)


def _writable_properties(entity: Any) -> List[str]:
    """Properties a Modified entity writes: its modified properties, or every column it carries."""
    state = sa_inspect(entity)
    entity_type = type(entity)
    excluded = set(key_fields(entity_type))
    version_key = version_field(entity_type)
    if version_key is not None:
        # The version token is advanced by the mapper, never taken from the client
        excluded.add(version_key)

    names = set(entity.modified_properties)
    if not names:
        names = {name for name in persisted_fields(entity_type) if name in state.dict}
    names -= excluded
    if not names:
        # No UPDATE would be issued, so a stale row version would go unnoticed
        raise InvalidChangeSetError(
            f"Modified {entity_type.__name__} has no writable properties to update", entity
        )
    missing = sorted(name for name in names if name not in state.dict)
    if missing:
        raise InvalidChangeSetError(
            f"Modified properties {missing} of {entity_type.__name__} carry no value", entity
        )
    return sorted(names)


def apply_changes(session: Session, root: GraphRoot) -> List[Any]:
    """
    Stage a tracked entity graph in a synchronous session.

    Use AsyncSession.run_sync to call it from async code.

    Returns:
        The entities of the graph, in traversal order

    Raises:
        InvalidChangeSetError: If tracking metadata cannot be applied
    """
    entities = list(iter_graph(root))
    for entity in entities:
        _validate(entity)
    _check_identities(entities)

    for entity in entities:
        state = sa_inspect(entity)
        if entity.tracking_state == TrackingState.ADDED:
            _prepare_insert(entity)
        elif state.transient:
            make_transient_to_detached(entity)

    for entity in entities:
        _rewire_added(entity)

    counts = {state.name: 0 for state in TrackingState}
    deleted = []
    for entity in entities:
        counts[entity.tracking_state.name] += 1
        if entity.tracking_state == TrackingState.DELETED:
            deleted.append(entity)
            continue
        session.add(entity)
        if entity.tracking_state == TrackingState.MODIFIED:
            for name in _writable_properties(entity):
                flag_modified(entity, name)

    # Deletes go last: adding an entity would revert a pending cascaded delete
    for entity in deleted:
        session.delete(entity)

    logger.debug("Entity graph staged", **{k.lower(): v for k, v in counts.items()})
    return entities


def _apply_and_flush(session: Session, root: GraphRoot) -> None:
    apply_changes(session, root)
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=_MISSING_ROW_DELETE, category=SAWarning)
        session.flush()


async def save_changes(session: AsyncSession, root: GraphRoot) -> None:
    """
    Apply a tracked entity graph and commit it.

    On success every entity is reset to Unchanged, generated keys and new
    row versions are populated, and Deleted children are removed from their
    collections. On failure the session is rolled back.

    Raises:
        ConcurrencyConflictError: If a row version no longer matches the store,
            or a Modified or Deleted row no longer exists
        ConstraintViolationError: If a key or foreign key constraint fails
        InvalidChangeSetError: If tracking metadata cannot be applied
    """
    try:
        await session.run_sync(_apply_and_flush, root)
        await session.commit()
    except (StaleDataError, SAWarning) as e:
        await session.rollback()
        logger.warning("Concurrency conflict", error=str(e))
        raise ConcurrencyConflictError("The entity was changed or deleted by another request") from e
    except IntegrityError as e:
        await session.rollback()
        logger.warning("Constraint violation", error=str(e.orig))
        raise ConstraintViolationError(str(e.orig)) from e
    except InvalidChangeSetError:
        await session.rollback()
        raise

    accept_changes(root)


def _load_references(session: Session, root: GraphRoot) -> None:
    for entity in list(iter_graph(root)):
        if entity.tracking_state == TrackingState.DELETED:
            continue
        state = sa_inspect(entity)
        for rel in state.mapper.relationships:
            if rel.uselist or state.dict.get(rel.key) is not None:
                continue
            local_column = rel.local_remote_pairs[0][0]
            fk_key = state.mapper.get_property_by_column(local_column).key
            fk_value = state.dict.get(fk_key)
            if fk_value is None:
                continue
            target = session.get(rel.mapper.class_, fk_value)
            set_committed_value(entity, rel.key, target)


async def load_related_entities(session: AsyncSession, root: GraphRoot) -> None:
    """
    Populate missing many-to-one references whose foreign key is set.

    Used after saving so that, for example, a newly added order detail is
    returned together with its product.
    """
    await session.run_sync(_load_references, root)
