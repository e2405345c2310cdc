"""Tests for the catalog row parser."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from runebox.parsers.catalog import card_from_row, format_timestamp, parse_timestamp, set_from_row


@pytest.fixture
def card_row() -> dict:
    return {
        "id": "ogn-042",
        "set_name": "Origins",
        "set_abv": "OGN",
        "image_url": "https://cdn.example.com/ogn-042.png",
        "name": "Jinx, Loose Cannon",
        "card_type": "Champion",
        "rarity": "epic",
        "domain": "Fury",
        "energy": 5,
        "might": 4,
        "power": "2",
        "tags": ["Jinx", "Zaun"],
        "ability": "Deal 3 to a unit.",
        "price": 12.5,
        "price_change": -1.25,
        "created_at": "2024-11-01T08:00:00+00:00",
        "updated_at": "2024-12-01T12:00:00.123456+00:00",
    }


class TestParseTimestamp:
    def test_iso_with_offset(self) -> None:
        """ISO strings with an offset become aware UTC datetimes."""
        result = parse_timestamp("2024-12-01T14:00:00+02:00")

        assert result == datetime(2024, 12, 1, 12, 0, tzinfo=UTC)
        assert result.tzinfo is UTC

    def test_trailing_z(self) -> None:
        """A trailing Z is read as UTC."""
        assert parse_timestamp("2024-12-01T12:00:00Z") == datetime(2024, 12, 1, 12, tzinfo=UTC)

    def test_naive_is_utc(self) -> None:
        """Naive values are assumed to be UTC."""
        assert parse_timestamp("2024-12-01 12:00:00") == datetime(2024, 12, 1, 12, tzinfo=UTC)

    def test_epoch_millis(self) -> None:
        """Integers are epoch milliseconds."""
        assert parse_timestamp(1_700_000_000_000) == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_datetime_passthrough(self) -> None:
        """Aware datetimes are converted to UTC."""
        tz = timezone(timedelta(hours=-5))
        value = datetime(2024, 12, 1, 7, 0, tzinfo=tz)

        assert parse_timestamp(value) == datetime(2024, 12, 1, 12, tzinfo=UTC)

    def test_missing(self) -> None:
        """None and empty strings parse to None."""
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_garbage_raises(self) -> None:
        """Unrecognized values raise ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp("last tuesday")
        with pytest.raises(ValueError):
            parse_timestamp(["2024"])


class TestFormatTimestamp:
    def test_keeps_microseconds(self) -> None:
        """Filters carry full precision so the watermark is exact."""
        value = datetime(2024, 12, 1, 12, 0, 0, 123456, tzinfo=UTC)

        assert format_timestamp(value) == "2024-12-01T12:00:00.123456+00:00"

    def test_naive_treated_as_utc(self) -> None:
        assert format_timestamp(datetime(2024, 12, 1)) == "2024-12-01T00:00:00.000000+00:00"


class TestCardFromRow:
    def test_full_row(self, card_row: dict) -> None:
        """Every field is mapped and coerced."""
        card = card_from_row(card_row)

        assert card.id == "ogn-042"
        assert card.name == "Jinx, Loose Cannon"
        assert card.card_type == "Champion"
        assert card.power == 2
        assert card.tags == ("Jinx", "Zaun")
        assert card.price == 12.5
        assert card.price_change == -1.25
        assert card.updated_at == datetime(2024, 12, 1, 12, 0, 0, 123456, tzinfo=UTC)

    def test_null_price_becomes_zero(self, card_row: dict) -> None:
        """Unpriced cards are stored with price 0."""
        card_row["price"] = None

        assert card_from_row(card_row).price == 0.0

    def test_missing_price_becomes_zero(self, card_row: dict) -> None:
        del card_row["price"]

        assert card_from_row(card_row).price == 0.0

    def test_json_string_tags(self, card_row: dict) -> None:
        """Older rows carry tags as a JSON string."""
        card_row["tags"] = '["Piltover"]'

        assert card_from_row(card_row).tags == ("Piltover",)

    def test_unparseable_tags_are_empty(self, card_row: dict) -> None:
        card_row["tags"] = "not json"

        assert card_from_row(card_row).tags == ()

    def test_domain_list_is_joined(self, card_row: dict) -> None:
        """Multi-domain cards keep every domain."""
        card_row["domain"] = ["Fury", "Chaos"]

        assert card_from_row(card_row).domain == "Fury,Chaos"

    def test_updated_at_falls_back_to_created_at(self, card_row: dict) -> None:
        """Never-modified rows use their creation time."""
        card_row["updated_at"] = None

        assert card_from_row(card_row).updated_at == datetime(2024, 11, 1, 8, tzinfo=UTC)

    def test_no_timestamps_uses_now(self, card_row: dict) -> None:
        del card_row["updated_at"]
        del card_row["created_at"]
        before = datetime.now(UTC)

        card = card_from_row(card_row)

        assert card.updated_at >= before

    def test_missing_required_field(self, card_row: dict) -> None:
        """A row without a name is rejected."""
        del card_row["name"]

        with pytest.raises(ValueError, match="name"):
            card_from_row(card_row)

    def test_null_id_rejected(self, card_row: dict) -> None:
        card_row["id"] = None

        with pytest.raises(ValueError, match="null id"):
            card_from_row(card_row)

    def test_malformed_number(self, card_row: dict) -> None:
        card_row["energy"] = "five"

        with pytest.raises(ValueError):
            card_from_row(card_row)


class TestSetFromRow:
    def test_set_row(self) -> None:
        card_set = set_from_row(
            {
                "id": 7,
                "set_name": "Origins",
                "set_abv": "OGN",
                "created_at": "2024-10-01T00:00:00Z",
            }
        )

        assert card_set.id == "7"
        assert card_set.set_abv == "OGN"
        assert card_set.created_at == datetime(2024, 10, 1, tzinfo=UTC)

    def test_missing_abbreviation(self) -> None:
        with pytest.raises(ValueError, match="set_abv"):
            set_from_row({"id": "1", "set_name": "Origins"})
