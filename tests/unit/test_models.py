"""
Unit Tests - Entity Model and Tracking Contract
"""
import uuid

import pytest
from sqlalchemy import inspect as sa_inspect

from northwind.database.models import (
    ENTITY_TYPES,
    ROW_VERSION_SIZE,
    Category,
    Customer,
    Order,
    OrderDetail,
    Product,
    next_row_version,
)
from northwind.tracking import (
    TRACKING_FIELDS,
    Mergeable,
    Trackable,
    TrackingState,
    collection_fields,
    navigation_fields,
    persisted_fields,
    set_tracked,
)


class TestTrackingFields:
    """Tests for the runtime-only tracking fields"""

    @pytest.mark.parametrize("entity_type", ENTITY_TYPES)
    def test_new_entity_defaults(self, entity_type):
        """A fresh entity is Unchanged with no modified properties"""
        entity = entity_type()

        assert entity.tracking_state == TrackingState.UNCHANGED
        assert entity.modified_properties == set()
        assert isinstance(entity.entity_identifier, uuid.UUID)
        assert entity.entity_identifier.int != 0

    @pytest.mark.parametrize("entity_type", ENTITY_TYPES)
    def test_implements_protocols(self, entity_type):
        entity = entity_type()

        assert isinstance(entity, Trackable)
        assert isinstance(entity, Mergeable)

    def test_identifiers_are_unique(self):
        identifiers = {Product().entity_identifier for _ in range(50)}
        assert len(identifiers) == 50

    def test_identifier_is_constant(self):
        """The identifier survives property changes and cannot be reassigned"""
        category = Category(category_id=1, category_name="Beverages")
        identifier = category.entity_identifier

        set_tracked(category, category_name="Drinks")

        assert category.entity_identifier == identifier
        with pytest.raises(AttributeError):
            category.entity_identifier = uuid.uuid4()

    def test_explicit_identifier_is_kept(self):
        identifier = uuid.uuid4()
        customer = Customer(customer_id="ALFKI", entity_identifier=str(identifier))
        assert customer.entity_identifier == identifier

    def test_tracking_fields_are_not_columns(self):
        for entity_type in ENTITY_TYPES:
            columns = {c.name for c in entity_type.__table__.columns}
            fields = set(persisted_fields(entity_type))
            for name in TRACKING_FIELDS:
                assert name not in fields
                assert name not in columns

    def test_materialize_leaves_relationships_unloaded(self):
        order = Order.materialize(tracking_state=TrackingState.MODIFIED, modified_properties=["freight"])

        assert order.tracking_state == TrackingState.MODIFIED
        assert order.modified_properties == {"freight"}
        assert "order_details" not in sa_inspect(order).dict
        assert "customer" not in sa_inspect(order).dict


class TestRelationships:
    """Tests for the navigation graph"""

    def test_collections_start_empty(self):
        assert Category().products == []
        assert Customer().orders == []
        assert Order().order_details == []

    def test_navigation_fields(self):
        assert set(navigation_fields(Order)) == {"customer", "order_details"}
        assert set(navigation_fields(OrderDetail)) == {"order", "product"}
        assert set(collection_fields(Customer)) == {"orders"}
        assert collection_fields(OrderDetail) == ()

    def test_back_references_are_maintained(self):
        customer = Customer(customer_id="ALFKI")
        order = Order(order_id=1, customer=customer)
        detail = OrderDetail(order_detail_id=1, order=order)

        assert customer.orders == [order]
        assert order.order_details == [detail]
        assert detail.order is order

    def test_order_detail_foreign_keys_cascade(self):
        table = OrderDetail.__table__
        for column in ("OrderId", "ProductId"):
            (fk,) = table.c[column].foreign_keys
            assert fk.ondelete == "CASCADE"
            assert table.c[column].nullable is False

    def test_table_and_column_names(self):
        assert Product.__tablename__ == "Products"
        assert {c.name for c in Product.__table__.columns} == {
            "ProductId",
            "ProductName",
            "CategoryId",
            "UnitPrice",
            "Discontinued",
            "RowVersion",
        }
        assert OrderDetail.__tablename__ == "OrderDetails"


class TestRowVersion:
    """Tests for the concurrency token generator"""

    def test_first_version(self):
        assert next_row_version(None) == b"\x00" * (ROW_VERSION_SIZE - 1) + b"\x01"

    def test_increments_big_endian(self):
        assert next_row_version(b"\x01") == b"\x00" * 7 + b"\x02"
        assert next_row_version(b"\x00" * 7 + b"\xff") == b"\x00" * 6 + b"\x01\x00"

    def test_wraps_around(self):
        assert next_row_version(b"\xff" * ROW_VERSION_SIZE) == b"\x00" * ROW_VERSION_SIZE

    def test_product_is_versioned(self):
        mapper = sa_inspect(Product)
        assert mapper.version_id_col.name == "RowVersion"
        assert mapper.version_id_generator is next_row_version
