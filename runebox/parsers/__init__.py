from runebox.parsers.catalog import (
    card_from_row,
    format_timestamp,
    parse_timestamp,
    set_from_row,
)

__all__ = [
    "card_from_row",
    "format_timestamp",
    "parse_timestamp",
    "set_from_row",
]
