# parkspot/search.py
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from parkspot.errors import ValidationError

DEFAULT_PRICE_RANGE = (0, 500)

# parking_type -> amenity keyword it requires
TYPE_KEYWORDS = {
    "covered": "covered",
    "valet": "valet",
    "security": "security",
}


@dataclass(frozen=True)
class SpotFilters:
    price_range: tuple = DEFAULT_PRICE_RANGE
    parking_type: str = "all"
    amenities: tuple = field(default_factory=tuple)

    @classmethod
    def from_args(cls, args):
        """Build filters from query-string args (``max_price``, ``parking_type``, ``amenities``)."""
        low, high = DEFAULT_PRICE_RANGE
        raw_max = args.get("max_price")
        if raw_max not in (None, ""):
            try:
                high = Decimal(str(raw_max))
            except InvalidOperation:
                raise ValidationError("max_price must be numeric") from None
            if not high.is_finite():
                raise ValidationError("max_price must be numeric")

        amenities = []
        for raw in args.getlist("amenities") if hasattr(args, "getlist") else [args.get("amenities") or ""]:
            amenities.extend(a.strip() for a in raw.split(",") if a.strip())

        return cls(
            price_range=(low, high),
            parking_type=(args.get("parking_type") or "all").strip().lower(),
            amenities=tuple(amenities),
        )


def _field(spot, name):
    if isinstance(spot, dict):
        return spot.get(name)
    return getattr(spot, name, None)


def _matches_text(spot, query):
    name = (_field(spot, "name") or "").lower()
    address = (_field(spot, "address") or "").lower()
    return query in name or query in address


def _matches_type(spot_amenities, parking_type):
    keyword = TYPE_KEYWORDS.get(parking_type)
    if keyword is None:
        return True
    return any(keyword in a.lower() for a in spot_amenities)


def filter_spots(spots, query="", filters=None):
    """
    Narrow a spot listing. Never reorders, never mutates the input.

    Text matches name or address case-insensitively, price keeps spots at or
    under the range maximum, parking type needs one amenity containing the
    type keyword, and requested amenities must all be present.
    """
    filters = filters or SpotFilters()
    query = (query or "").strip().lower()
    max_price = Decimal(str(filters.price_range[1]))
    wanted = set(filters.amenities)

    result = []
    for spot in spots:
        if query and not _matches_text(spot, query):
            continue
        if Decimal(str(_field(spot, "price"))) > max_price:
            continue

        spot_amenities = _field(spot, "amenities") or []
        if filters.parking_type != "all" and not _matches_type(spot_amenities, filters.parking_type):
            continue
        if wanted and not wanted.issubset(spot_amenities):
            continue

        result.append(spot)
    return result
