"""
Unit tests for domain entities.
"""
import pytest
from decimal import Decimal

from internal.domain.change import ChangeKind, ChangeRecord
from internal.domain.errors import DomainValidationError, MalformedChangeRecordError
from internal.domain.events import DomainEvent, EventType, map_change_record
from internal.domain.product import Product, ProductPage
from internal.domain.value_objects import Price, SequenceToken


class TestProduct:
    """Tests for Product entity."""

    def test_create_valid_product(self):
        """Test creating a valid product."""
        product = Product(id="p1", name="Widget", price=999)

        assert product.id == "p1"
        assert product.name == "Widget"
        assert product.price == Decimal("999.00")

    def test_price_is_rounded_to_two_digits(self):
        """Test that prices keep two fractional digits, rounding half up."""
        assert Product(id="p1", name="Widget", price="9.995").price == Decimal("10.00")
        assert Product(id="p1", name="Widget", price=9.99).price == Decimal("9.99")

    def test_empty_name_raises_error(self):
        """Test that an empty name raises validation error."""
        with pytest.raises(DomainValidationError) as exc_info:
            Product(id="p1", name="", price=1)

        assert "name is required" in str(exc_info.value)

    def test_whitespace_name_raises_error(self):
        """Test that a whitespace-only name counts as empty."""
        with pytest.raises(DomainValidationError):
            Product(id="p1", name="   ", price=1)

    def test_empty_id_raises_error(self):
        """Test that an empty id raises validation error."""
        with pytest.raises(DomainValidationError) as exc_info:
            Product(id="", name="Widget", price=1)

        assert "id is required" in str(exc_info.value)

    def test_negative_price_raises_error(self):
        """Test that a negative price raises validation error."""
        with pytest.raises(DomainValidationError):
            Product(id="p1", name="Widget", price=-1)

    def test_zero_price_is_valid(self):
        """Test that a free product is valid."""
        assert Product(id="p1", name="Sample", price=0).price == Decimal("0.00")

    def test_validate_rechecks_mutated_product(self):
        """Test that validate() catches invariants broken after construction."""
        product = Product(id="p1", name="Widget", price=1)
        product.name = ""

        with pytest.raises(DomainValidationError):
            product.validate()

    def test_to_dict_serializes_price_as_string(self):
        """Test the transport representation."""
        product = Product(id="p1", name="Widget", price=999)

        assert product.to_dict() == {"id": "p1", "name": "Widget", "price": "999.00"}

    def test_from_dict(self):
        """Test building a product from a mapping."""
        product = Product.from_dict({"id": "p1", "name": "Widget", "price": "9.99"})

        assert product == Product(id="p1", name="Widget", price=Decimal("9.99"))

    def test_from_dict_missing_field_raises_error(self):
        """Test that a missing field is reported."""
        with pytest.raises(DomainValidationError) as exc_info:
            Product.from_dict({"id": "p1", "name": "Widget"})

        assert "price" in str(exc_info.value)

    def test_page_to_dict_omits_next_on_last_page(self):
        """Test page serialization."""
        page = ProductPage(products=[Product(id="p1", name="Widget", price=1)])

        assert page.to_dict() == {
            "products": [{"id": "p1", "name": "Widget", "price": "1.00"}]
        }
        assert ProductPage(next_cursor="abc").to_dict()["next"] == "abc"


class TestPrice:
    """Tests for Price value object."""

    def test_of_accepts_common_types(self):
        """Test coercion from int, str, float and Decimal."""
        assert Price.of(5).amount == Decimal("5.00")
        assert Price.of("5.5").amount == Decimal("5.50")
        assert Price.of(0.1).amount == Decimal("0.10")
        assert Price.of(Decimal("1.234")).amount == Decimal("1.23")

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity", -0.01])
    def test_of_rejects_invalid_values(self, value):
        """Test that invalid prices raise validation error."""
        with pytest.raises(DomainValidationError):
            Price.of(value)

    def test_cents_conversion(self):
        """Test conversion to and from integer cents."""
        assert Price.of("9.99").cents == 999
        assert Price.from_cents(999).amount == Decimal("9.99")
        assert str(Price.from_cents(100)) == "1.00"


class TestSequenceToken:
    """Tests for SequenceToken value object."""

    def test_orders_numerically(self):
        """Test that tokens never compare lexically."""
        assert SequenceToken("10") > SequenceToken("9")
        assert SequenceToken("1700000000000-10") > SequenceToken("1700000000000-9")
        assert SequenceToken("1700000000001-0") > SequenceToken("1700000000000-99")

    def test_long_sequence_numbers(self):
        """Test DynamoDB style sequence numbers."""
        assert SequenceToken("4421584500000000017450439092") > SequenceToken(
            "4421584500000000017450439091"
        )

    def test_equal_numeric_value_is_equal(self):
        """Test that leading zeros do not matter."""
        assert SequenceToken("01") == SequenceToken("1")
        assert hash(SequenceToken("01")) == hash(SequenceToken("1"))

    @pytest.mark.parametrize("value", ["", "abc", "1-x", "-1"])
    def test_invalid_tokens_raise_error(self, value):
        """Test that unparseable tokens are rejected."""
        with pytest.raises(DomainValidationError):
            SequenceToken(value)


class TestChangeRecord:
    """Tests for ChangeRecord invariants."""

    def test_valid_records(self, make_record, make_product):
        """Test that well-formed records validate."""
        p = make_product()
        make_record(ChangeKind.INSERT, new=p).validate()
        make_record(ChangeKind.MODIFY, old=p, new=p).validate()
        make_record(ChangeKind.REMOVE, old=p).validate()

    @pytest.mark.parametrize(
        "kind,with_old,with_new",
        [
            (ChangeKind.INSERT, False, False),
            (ChangeKind.INSERT, True, True),
            (ChangeKind.REMOVE, False, False),
            (ChangeKind.REMOVE, True, True),
            (ChangeKind.MODIFY, True, False),
            (ChangeKind.MODIFY, False, True),
        ],
    )
    def test_image_invariants(self, make_record, make_product, kind, with_old, with_new):
        """Test that images must match the change kind."""
        p = make_product()
        record = make_record(kind, old=p if with_old else None, new=p if with_new else None)

        with pytest.raises(MalformedChangeRecordError):
            record.validate()

    def test_image_id_must_match_key(self, make_record, make_product):
        """Test that an image for another product is rejected."""
        record = make_record(ChangeKind.INSERT, key="p1", new=make_product("p2"))

        with pytest.raises(MalformedChangeRecordError) as exc_info:
            record.validate()

        assert exc_info.value.record_id == record.record_id

    def test_invalid_token_is_malformed(self, make_record, make_product):
        """Test that a bad sequence token makes the record malformed."""
        record = make_record(ChangeKind.INSERT, token="not-a-token", new=make_product())

        with pytest.raises(MalformedChangeRecordError):
            record.validate()

    def test_missing_key_is_malformed(self, make_product):
        """Test that a record without key is malformed."""
        record = ChangeRecord(
            record_id="r1",
            kind=ChangeKind.REMOVE,
            key="",
            sequence_token="1",
            old_image=make_product(),
        )

        with pytest.raises(MalformedChangeRecordError):
            record.validate()

    def test_is_noop(self, make_record, make_product):
        """Test detection of a MODIFY rewriting identical data."""
        p = make_product()

        assert make_record(ChangeKind.MODIFY, old=p, new=make_product()).is_noop
        assert not make_record(
            ChangeKind.MODIFY, old=p, new=make_product(price="1.00")
        ).is_noop
        assert not make_record(ChangeKind.INSERT, new=p).is_noop


class TestEventMapping:
    """Tests for change record to domain event mapping."""

    def test_insert_maps_to_created(self, make_record):
        """Test INSERT maps to ProductCreated with the new image."""
        widget = Product(id="p1", name="Widget", price=999)
        event = map_change_record(make_record(ChangeKind.INSERT, token="7", new=widget))

        assert event == DomainEvent(
            event_type=EventType.PRODUCT_CREATED,
            product_id="p1",
            source_sequence_token="7",
            payload=widget,
        )
        assert event.to_dict()["payload"] == {"id": "p1", "name": "Widget", "price": "999.00"}

    def test_remove_maps_to_deleted_without_payload(self, make_record, make_product):
        """Test REMOVE maps to ProductDeleted carrying only the id."""
        event = map_change_record(make_record(ChangeKind.REMOVE, old=make_product()))

        assert event.event_type == EventType.PRODUCT_DELETED
        assert event.product_id == "p1"
        assert event.payload is None
        assert "payload" not in event.to_dict()

    def test_modify_maps_to_updated_with_new_image(self, make_record, make_product):
        """Test MODIFY maps to ProductUpdated with the new image."""
        new = make_product(price="12.00")
        event = map_change_record(make_record(ChangeKind.MODIFY, old=make_product(), new=new))

        assert event.event_type == EventType.PRODUCT_UPDATED
        assert event.payload == new

    def test_unchanged_modify_is_suppressed_by_default(self, make_record, make_product):
        """Test that an identical MODIFY produces no event."""
        record = make_record(ChangeKind.MODIFY, old=make_product(), new=make_product())

        assert map_change_record(record) is None

    def test_unchanged_modify_emitted_when_not_suppressed(self, make_record, make_product):
        """Test that the suppression policy can be turned off."""
        record = make_record(ChangeKind.MODIFY, old=make_product(), new=make_product())

        event = map_change_record(record, suppress_unchanged=False)

        assert event.event_type == EventType.PRODUCT_UPDATED
