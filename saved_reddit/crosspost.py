"""Crosspost detection and origin substitution."""
from __future__ import annotations

from .config import FormatterSettings
from .models import Item, Post


def is_crosspost(item: Item) -> bool:
    """True only when the crosspost marker is set and the origin chain is non-empty."""
    return isinstance(item, Post) and bool(item.crosspost_parent) and bool(item.crosspost_parent_list)


def crosspost_origin(item: Item) -> Post | None:
    if isinstance(item, Post) and item.crosspost_parent_list:
        return item.crosspost_parent_list[0]
    return None


def effective_item(item: Item, settings: FormatterSettings) -> Item:
    """Return the item whose content fields should be rendered.

    With ``import_crosspost_original`` enabled a crosspost is replaced by the
    first entry of its origin chain. Provenance (who crossposted what, where)
    must still be read from ``item`` itself.
    """
    if not settings.import_crosspost_original:
        return item
    origin = crosspost_origin(item)
    return origin if origin is not None else item
