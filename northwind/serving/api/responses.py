"""
Entity Graph Responses

Entity graphs can be cyclic, so they bypass Pydantic response models and
travel through the reference-preserving codec instead.
"""

from typing import Any, Type

from fastapi.responses import JSONResponse

from northwind.errors import GraphFormatError
from northwind.tracking import dump_graph, load_graph


class GraphResponse(JSONResponse):
    """JSON response whose content is an entity or a list of entities"""

    def __init__(self, root: Any, status_code: int = 200, **kwargs: Any):
        super().__init__(content=dump_graph(root), status_code=status_code, **kwargs)


def load_entity(payload: Any, entity_type: Type) -> Any:
    """Decode a request body that must hold a single entity graph."""
    entity = load_graph(payload, entity_type)
    if isinstance(entity, list):
        raise GraphFormatError(f"Expected a single {entity_type.__name__}, got a collection")
    return entity
