"""
Catalog row parser.

Converts rows returned by the hosted catalog into domain records. The
catalog is loosely typed: numerics may arrive as strings, tags as a JSON
string instead of an array, and price as null for cards that have not been
priced yet.
"""

import json
from datetime import UTC, datetime
from typing import Any

from runebox.models.card import Card, CardSet


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a catalog timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (timestamptz, with or without a trailing "Z"),
    datetimes, and epoch milliseconds.

    Raises:
        ValueError: If the value is present but not a recognizable timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, int | float) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unrecognized timestamp: {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime for a catalog filter (ISO-8601, microseconds, UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_tags(raw: Any) -> tuple[str, ...]:
    """Tags arrive as a TEXT[] array or, from older rows, as a JSON string."""
    if isinstance(raw, list | tuple):
        return tuple(str(t) for t in raw)
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return ()
        if isinstance(decoded, list):
            return tuple(str(t) for t in decoded)
    return ()


def _optional_int(raw: Any) -> int | None:
    return int(raw) if raw is not None else None


def _optional_float(raw: Any) -> float | None:
    return float(raw) if raw is not None else None


def _optional_str(raw: Any) -> str | None:
    return str(raw) if raw else None


def _parse_domain(raw: Any) -> str | None:
    """A card may belong to several domains; they are stored comma-joined."""
    if isinstance(raw, list | tuple):
        return ",".join(str(d) for d in raw) or None
    return _optional_str(raw)


def card_from_row(row: dict[str, Any]) -> Card:
    """
    Convert one catalog row to a Card.

    A null price becomes 0. updated_at falls back to created_at for rows
    that were never modified, then to the current time.

    Raises:
        ValueError: If a required field is missing or a value is malformed
    """
    try:
        card_id = row["id"]
        set_name = row["set_name"]
        set_abv = row["set_abv"]
        name = row["name"]
        card_type = row["card_type"]
        rarity = row["rarity"]
    except KeyError as e:
        raise ValueError(f"Catalog card row missing field {e}") from e

    if card_id is None:
        raise ValueError("Catalog card row has a null id")

    updated_at = parse_timestamp(row.get("updated_at") or row.get("created_at"))
    if updated_at is None:
        updated_at = datetime.now(UTC)

    price = row.get("price")

    return Card(
        id=str(card_id),
        set_name=str(set_name),
        set_abv=str(set_abv),
        name=str(name),
        card_type=str(card_type),
        rarity=str(rarity),
        updated_at=updated_at,
        image_url=_optional_str(row.get("image_url")),
        domain=_parse_domain(row.get("domain")),
        energy=_optional_int(row.get("energy")),
        might=_optional_int(row.get("might")),
        power=_optional_int(row.get("power")),
        tags=_parse_tags(row.get("tags")),
        ability=_optional_str(row.get("ability")),
        price=float(price) if price is not None else 0.0,
        price_change=_optional_float(row.get("price_change")),
    )


def set_from_row(row: dict[str, Any]) -> CardSet:
    """
    Convert one catalog row to a CardSet.

    Raises:
        ValueError: If a required field is missing or a value is malformed
    """
    try:
        set_id = row["id"]
        set_name = row["set_name"]
        set_abv = row["set_abv"]
    except KeyError as e:
        raise ValueError(f"Catalog set row missing field {e}") from e

    created_at = parse_timestamp(row.get("created_at")) or datetime.now(UTC)

    return CardSet(
        id=str(set_id),
        set_name=str(set_name),
        set_abv=str(set_abv),
        created_at=created_at,
    )
