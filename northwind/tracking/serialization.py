"""
Reference-Preserving Graph Codec

Converts entity graphs to and from JSON-compatible structures that keep
object identity across the wire:

- every entity and every collection is tagged with "$id"
- a repeated identity is written as {"$ref": "<id>"}
- collections are written as {"$id": ..., "$values": [...]}

Cycles such as Order -> Customer -> Orders therefore round-trip to the same
identity structure instead of expanding forever. Property names are camelCase
on the wire. Decimals travel as strings, row versions as base64 and
timestamps as ISO 8601.

Decoded instances are materialized with committed values (no change
history), like rows loaded from storage; their tracking fields come from the
payload.
"""

import base64
import binascii
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Type

import structlog
from sqlalchemy import Boolean, DateTime, Float, Integer, LargeBinary, Numeric, SmallInteger, String
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm.attributes import set_committed_value

from northwind.errors import GraphFormatError
from northwind.tracking.changes import GraphRoot
from northwind.tracking.state import TrackingState

logger = structlog.get_logger(__name__)

ID_KEY = "$id"
REF_KEY = "$ref"
VALUES_KEY = "$values"

TRACKING_STATE_KEY = "trackingState"
MODIFIED_PROPERTIES_KEY = "modifiedProperties"
ENTITY_IDENTIFIER_KEY = "entityIdentifier"


def to_camel(name: str) -> str:
    """order_detail_id -> orderDetailId"""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _wire_names(entity_type: Type) -> Dict[str, str]:
    """Map accepted wire names (camelCase and snake_case) to attribute names."""
    mapper = sa_inspect(entity_type)
    names = {}
    for prop in list(mapper.column_attrs) + list(mapper.relationships):
        names[prop.key] = prop.key
        names[to_camel(prop.key)] = prop.key
    return names


# =============================================================================
# SCALARS
# =============================================================================

def _encode_scalar(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _decode_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not a decimal")
    return Decimal(str(value))


def _decode_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _decode_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, list):
        return bytes(value)
    return base64.b64decode(str(value), validate=True)


def _decode_int(value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise TypeError(f"{value!r} is not an integer")
    return int(value)


def _decode_small_int(value: Any) -> int:
    result = _decode_int(value)
    if not -32768 <= result <= 32767:
        raise ValueError(f"{value!r} is out of range for a 16-bit integer")
    return result


def _decode_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{value!r} is not a boolean")
    return value


def _decode_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"{value!r} is not a number")
    return float(value)


def _decode_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{value!r} is not a string")
    return value


def _decoder_for(column_type: Any) -> Callable[[Any], Any]:
    # Order matters: Float is a Numeric subclass
    if isinstance(column_type, Float):
        return _decode_float
    if isinstance(column_type, Numeric):
        return _decode_decimal
    if isinstance(column_type, SmallInteger):
        return _decode_small_int
    if isinstance(column_type, Integer):
        return _decode_int
    if isinstance(column_type, Boolean):
        return _decode_bool
    if isinstance(column_type, DateTime):
        return _decode_datetime
    if isinstance(column_type, LargeBinary):
        return _decode_bytes
    if isinstance(column_type, String):
        return _decode_str
    return lambda value: value


# =============================================================================
# ENCODING
# =============================================================================

class GraphEncoder:
    """Encodes one graph; ids are unique within a single encode() call."""

    def __init__(self):
        self._ids: Dict[int, str] = {}
        # Keep encoded objects alive so id() values cannot be reused mid-encode
        self._keepalive: List[Any] = []

    def encode(self, root: GraphRoot) -> Any:
        if isinstance(root, (list, tuple)):
            return self._encode_collection(root)
        return self._encode_entity(root)

    def _register(self, obj: Any) -> Optional[str]:
        key = id(obj)
        if key in self._ids:
            return None
        ref = str(len(self._ids) + 1)
        self._ids[key] = ref
        self._keepalive.append(obj)
        return ref

    def _encode_collection(self, items: Any) -> Dict[str, Any]:
        ref = self._register(items)
        if ref is None:
            return {REF_KEY: self._ids[id(items)]}
        return {ID_KEY: ref, VALUES_KEY: [self._encode_entity(item) for item in items]}

    def _encode_entity(self, entity: Any) -> Dict[str, Any]:
        ref = self._register(entity)
        if ref is None:
            return {REF_KEY: self._ids[id(entity)]}

        state = sa_inspect(entity)
        out: Dict[str, Any] = {ID_KEY: ref}
        for attr in state.mapper.column_attrs:
            out[to_camel(attr.key)] = _encode_scalar(state.dict.get(attr.key))

        for rel in state.mapper.relationships:
            if rel.key not in state.dict:
                continue
            value = state.dict[rel.key]
            if rel.uselist:
                out[to_camel(rel.key)] = self._encode_collection(value)
            else:
                out[to_camel(rel.key)] = None if value is None else self._encode_entity(value)

        out[TRACKING_STATE_KEY] = int(entity.tracking_state)
        modified = sorted(to_camel(name) for name in entity.modified_properties)
        out[MODIFIED_PROPERTIES_KEY] = modified or None
        out[ENTITY_IDENTIFIER_KEY] = str(entity.entity_identifier)
        return out


def dump_graph(root: GraphRoot) -> Any:
    """Encode an entity or a list of entities into JSON-compatible data."""
    return GraphEncoder().encode(root)


# =============================================================================
# DECODING
# =============================================================================

class GraphDecoder:
    """Decodes one graph, resolving "$ref" entries against earlier "$id" tags."""

    def __init__(self):
        self._refs: Dict[str, Any] = {}

    def decode(self, data: Any, entity_type: Type) -> Any:
        if isinstance(data, list) or (isinstance(data, dict) and VALUES_KEY in data):
            return self._decode_collection(data, entity_type)
        if isinstance(data, dict) and REF_KEY in data:
            raise GraphFormatError("Graph root cannot be a reference")
        return self._decode_entity(data, entity_type)

    def _resolve(self, ref: Any, expected: Type) -> Any:
        try:
            target = self._refs[str(ref)]
        except KeyError:
            raise GraphFormatError(f"Reference to unknown $id {ref!r}") from None
        if not isinstance(target, expected):
            raise GraphFormatError(
                f"Reference {ref!r} points to {type(target).__name__}, expected {expected.__name__}"
            )
        return target

    def _register(self, data: Dict[str, Any], obj: Any) -> None:
        ref = data.get(ID_KEY)
        if ref is None:
            return
        if str(ref) in self._refs:
            raise GraphFormatError(f"Duplicate $id {ref!r}")
        self._refs[str(ref)] = obj

    def _decode_collection(self, data: Any, entity_type: Type) -> List[Any]:
        if isinstance(data, dict):
            if REF_KEY in data:
                return self._resolve(data[REF_KEY], list)
            values = data.get(VALUES_KEY)
            if not isinstance(values, list):
                raise GraphFormatError("Collection must carry a $values list")
            items: List[Any] = []
            self._register(data, items)
        elif isinstance(data, list):
            values = data
            items = []
        else:
            raise GraphFormatError(f"Expected a collection of {entity_type.__name__}")

        for value in values:
            items.append(self._decode_entity(value, entity_type))
        return items

    def _decode_entity(self, data: Any, entity_type: Type) -> Any:
        if not isinstance(data, dict):
            raise GraphFormatError(f"Expected an object for {entity_type.__name__}")
        if REF_KEY in data:
            return self._resolve(data[REF_KEY], entity_type)

        entity = entity_type.materialize(**self._tracking_arguments(data, entity_type))
        self._register(data, entity)

        mapper = sa_inspect(entity_type)
        names = _wire_names(entity_type)
        present = {names[key]: value for key, value in data.items() if key in names}

        for attr in mapper.column_attrs:
            if attr.key not in present:
                continue
            raw = present[attr.key]
            if raw is None:
                set_committed_value(entity, attr.key, None)
                continue
            decoder = _decoder_for(attr.columns[0].type)
            try:
                set_committed_value(entity, attr.key, decoder(raw))
            except (TypeError, ValueError, InvalidOperation, binascii.Error) as e:
                raise GraphFormatError(
                    f"Invalid value for {entity_type.__name__}.{attr.key}: {raw!r}"
                ) from e

        for rel in mapper.relationships:
            if rel.key not in present:
                continue
            raw = present[rel.key]
            target_type = rel.mapper.class_
            if rel.uselist:
                children = [] if raw is None else self._decode_collection(raw, target_type)
                set_committed_value(entity, rel.key, children)
                if rel.back_populates:
                    for child in children:
                        # Restore the inverse side when the payload omitted it
                        if rel.back_populates not in sa_inspect(child).dict:
                            set_committed_value(child, rel.back_populates, entity)
            else:
                value = None if raw is None else self._decode_entity(raw, target_type)
                set_committed_value(entity, rel.key, value)

        return entity

    @staticmethod
    def _tracking_arguments(data: Dict[str, Any], entity_type: Type) -> Dict[str, Any]:
        names = _wire_names(entity_type)
        try:
            state = TrackingState(data.get(TRACKING_STATE_KEY) or 0)
        except ValueError as e:
            raise GraphFormatError(f"Invalid tracking state {data.get(TRACKING_STATE_KEY)!r}") from e

        modified = data.get(MODIFIED_PROPERTIES_KEY) or []
        if not isinstance(modified, list):
            raise GraphFormatError("modifiedProperties must be a list")
        # Unknown names are kept verbatim so the storage layer can reject them
        modified_names = {names.get(str(name), str(name)) for name in modified}

        identifier = data.get(ENTITY_IDENTIFIER_KEY)
        if identifier is not None:
            try:
                identifier = uuid.UUID(str(identifier))
            except ValueError as e:
                raise GraphFormatError(f"Invalid entity identifier {identifier!r}") from e
            if identifier.int == 0:
                identifier = None

        return {
            "tracking_state": state,
            "modified_properties": modified_names,
            "entity_identifier": identifier,
        }


def load_graph(data: Any, entity_type: Type) -> Any:
    """
    Decode JSON-compatible data into an entity or a list of entities.

    Raises:
        GraphFormatError: If the payload is not a well-formed graph
    """
    result = GraphDecoder().decode(data, entity_type)
    logger.debug("Entity graph decoded", entity_type=entity_type.__name__)
    return result
