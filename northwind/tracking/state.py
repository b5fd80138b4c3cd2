"""
Change Tracking Contract

Every entity exposes three runtime-only fields that a merge collaborator
relies on to operate over heterogeneous entity types without per-type logic:

- tracking_state: pending mutation relative to the last persisted state
- modified_properties: attribute names changed since the entity was Unchanged
- entity_identifier: process-unique id correlating a detached instance with
  its persisted counterpart, independent of the primary key

The fields are plain instance attributes, never mapped columns, so they are
not persisted. The contract is expressed as protocols; TrackableMixin is the
implementation the models share.
"""

import uuid
from enum import Enum
from typing import Any, Iterable, Optional, Protocol, Set, Tuple, Type, runtime_checkable

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import reconstructor


class TrackingState(int, Enum):
    """Pending mutation of an entity. Values match the wire format."""
    UNCHANGED = 0
    ADDED = 1
    MODIFIED = 2
    DELETED = 3


TRACKING_FIELDS: Tuple[str, ...] = ("tracking_state", "modified_properties", "entity_identifier")


@runtime_checkable
class Trackable(Protocol):
    """Carries a tracking state and the names of modified properties"""

    tracking_state: TrackingState
    modified_properties: Set[str]


@runtime_checkable
class Mergeable(Protocol):
    """Carries an identifier used to correlate detached and persisted instances"""

    @property
    def entity_identifier(self) -> uuid.UUID:
        ...


def _coerce_identifier(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class TrackableMixin:
    """
    Tracking fields for declarative models.

    Must precede the declarative base in the class bases so that the tracking
    keyword arguments are consumed before the mapped constructor runs.
    One-to-many collections not passed to the constructor start out empty.
    """

    def __init__(
        self,
        *,
        tracking_state: TrackingState = TrackingState.UNCHANGED,
        modified_properties: Optional[Iterable[str]] = None,
        entity_identifier: Optional[Any] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._set_tracking(tracking_state, modified_properties, entity_identifier)
        for key in collection_fields(type(self)):
            if key not in kwargs:
                setattr(self, key, [])

    @classmethod
    def materialize(
        cls,
        tracking_state: TrackingState = TrackingState.UNCHANGED,
        modified_properties: Optional[Iterable[str]] = None,
        entity_identifier: Optional[Any] = None,
    ):
        """
        Create an instance without running __init__, as storage does for rows.

        No attribute is present on the result, so relationships the caller
        never assigns are treated as not loaded rather than empty.
        """
        entity = sa_inspect(cls).class_manager.new_instance()
        entity._set_tracking(tracking_state, modified_properties, entity_identifier)
        return entity

    @reconstructor
    def _init_tracking_on_load(self) -> None:
        # Instances loaded from storage bypass __init__
        self._set_tracking(TrackingState.UNCHANGED, None, None)

    def _set_tracking(
        self,
        tracking_state: TrackingState,
        modified_properties: Optional[Iterable[str]],
        entity_identifier: Optional[Any],
    ) -> None:
        self.tracking_state = TrackingState(tracking_state)
        self.modified_properties = set(modified_properties or ())
        self._entity_identifier = (
            _coerce_identifier(entity_identifier) if entity_identifier is not None else uuid.uuid4()
        )

    @property
    def entity_identifier(self) -> uuid.UUID:
        return self._entity_identifier

    def __repr__(self) -> str:
        keys = ", ".join(f"{k}={v!r}" for k, v in zip(key_fields(type(self)), primary_key_of(self)))
        return f"<{type(self).__name__} {keys} {self.tracking_state.name}>"


def persisted_fields(entity_type: Type) -> Tuple[str, ...]:
    """Attribute names of the mapped columns of an entity type."""
    return tuple(attr.key for attr in sa_inspect(entity_type).column_attrs)


def key_fields(entity_type: Type) -> Tuple[str, ...]:
    """Attribute names of the primary key columns of an entity type."""
    mapper = sa_inspect(entity_type)
    return tuple(mapper.get_property_by_column(col).key for col in mapper.primary_key)


def navigation_fields(entity_type: Type) -> Tuple[str, ...]:
    """Attribute names of all relationships of an entity type."""
    return tuple(rel.key for rel in sa_inspect(entity_type).relationships)


def collection_fields(entity_type: Type) -> Tuple[str, ...]:
    """Attribute names of the one-to-many relationships of an entity type."""
    return tuple(rel.key for rel in sa_inspect(entity_type).relationships if rel.uselist)


def primary_key_of(entity: Any) -> Tuple[Any, ...]:
    """Primary key values currently held by an entity, without loading."""
    state = sa_inspect(entity)
    return tuple(state.dict.get(key) for key in key_fields(type(entity)))


def version_field(entity_type: Type) -> Optional[str]:
    """Attribute name of the row version column, or None for unversioned types."""
    mapper = sa_inspect(entity_type)
    if mapper.version_id_col is None:
        return None
    return mapper.get_property_by_column(mapper.version_id_col).key
