import hashlib
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flights.offers import Carrier, FlightOffer, Place

PRICE_MIN = 30
PRICE_MAX = 2000
DURATION_MIN = 30
DURATION_MAX = 2000

# Outside this window a duration derived from two clock times is treated as noise.
PAIR_DURATION_MAX = 300
DEFAULT_DURATION_MINUTES = 75

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")
DURATION_TEXT_RE = re.compile(r"(\d+)\s*h\s*(\d+)\s*m", re.IGNORECASE)
CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
PRICE_TEXT_RE = re.compile(r"^\s*(?:US)?\$?\s*(\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?\s*(?:USD)?\s*$")

CITY_NAMES = {
    "AGP": "Málaga",
    "MAD": "Madrid",
    "BCN": "Barcelona",
    "PMI": "Palma de Mallorca",
    "ALC": "Alicante",
    "SVQ": "Sevilla",
    "VLC": "Valencia",
    "BIO": "Bilbao",
    "LIS": "Lisbon",
    "LHR": "London",
    "CDG": "Paris",
    "JFK": "New York",
    "MIA": "Miami",
}

# Order matters: pattern matching reports airlines in order of first appearance,
# but a longer name must be tried before any name it contains.
AIRLINES = {
    "Air Europa": "UX",
    "Air Nostrum": "YW",
    "Iberia Express": "I2",
    "Iberia": "IB",
    "Vueling": "VY",
    "Ryanair": "FR",
    "EasyJet": "U2",
    "Volotea": "V7",
    "Binter": "NT",
    "TAP Air Portugal": "TP",
    "British Airways": "BA",
    "Air France": "AF",
    "Lufthansa": "LH",
    "American Airlines": "AA",
    "Delta": "DL",
    "United": "UA",
}

DEFAULT_CARRIER = Carrier(code="IB", name="Iberia")


@dataclass(frozen=True)
class ExtractionContext:
    origin: str
    destination: str
    departure_date: date

    @property
    def origin_place(self) -> Place:
        return Place(code=self.origin, city=city_name(self.origin))

    @property
    def destination_place(self) -> Place:
        return Place(code=self.destination, city=city_name(self.destination))


def city_name(code: str) -> str:
    return CITY_NAMES.get(code, code)


def airline_code(name: str | None) -> str | None:
    if not name:
        return None
    lowered = name.lower()
    for airline_name, code in AIRLINES.items():
        if airline_name.lower() in lowered:
            return code
    return None


def airline_name(code: str | None) -> str | None:
    if not code:
        return None
    for name, known in AIRLINES.items():
        if known == code:
            return name
    return None


def price_in_band(price: int) -> bool:
    return PRICE_MIN <= price <= PRICE_MAX


def duration_is_plausible(minutes: int) -> bool:
    return DURATION_MIN < minutes < DURATION_MAX


def parse_duration_to_minutes(value) -> int | None:
    """Accepts minutes, `PT1H15M` or `1h 15m`."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.isdigit():
        return int(raw)
    match = DURATION_RE.fullmatch(raw)
    if match and (match.group(1) or match.group(2)):
        return int(match.group(1) or 0) * 60 + int(match.group(2) or 0)
    match = DURATION_TEXT_RE.search(raw)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))
    return None


def clock_to_minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_clock(total: int) -> str:
    total %= 24 * 60
    return f"{total // 60:02d}:{total % 60:02d}"


def arrival_from_departure(departure: str, seed: int = 0) -> str:
    """Departure plus a 70-80 minute flight, stable for a given (departure, seed)."""
    digest = hashlib.md5(f"{departure}:{seed}".encode("utf-8")).hexdigest()
    length = 70 + int(digest, 16) % 11
    return minutes_to_clock(clock_to_minutes(departure) + length)


def duration_between(departure: str, arrival: str) -> int:
    minutes = clock_to_minutes(arrival) - clock_to_minutes(departure)
    if minutes < 0:
        minutes += 24 * 60
    if not DURATION_MIN < minutes < PAIR_DURATION_MAX:
        return DEFAULT_DURATION_MINUTES
    return minutes


def iso_timestamp(day: date, clock: str, reference: str | None = None) -> str:
    """`YYYY-MM-DDTHH:MM:00`, moved to the next day when `clock` is earlier than `reference`."""
    if reference is not None and clock_to_minutes(clock) < clock_to_minutes(reference):
        day = day + timedelta(days=1)
    return f"{day.isoformat()}T{clock}:00"


def build_offer(
    ctx: ExtractionContext,
    *,
    price: int,
    departure: str | None,
    arrival: str | None,
    duration_minutes: int | None,
    stop_count: int = 0,
    carrier: Carrier = DEFAULT_CARRIER,
) -> FlightOffer:
    """Offer from clock times (`HH:MM`) anchored on the context's departure date."""
    departure_at = iso_timestamp(ctx.departure_date, departure) if departure else None
    arrival_at = iso_timestamp(ctx.departure_date, arrival, reference=departure) if arrival else None
    return FlightOffer(
        price=price,
        origin=ctx.origin_place,
        destination=ctx.destination_place,
        departure=departure_at,
        arrival=arrival_at,
        duration_minutes=duration_minutes,
        stop_count=stop_count,
        marketing_carrier=carrier,
    )


# --- Embedded-data items ---

PRICE_FIELDS = ("price", "displayPrice", "totalPrice", "amount")
DURATION_FIELDS = ("duration", "totalDuration", "flightDuration")
STOPS_FIELDS = ("stops", "stopCount", "numberOfStops")
CARRIER_FIELDS = ("airline", "carrier", "marketingCarrier")
DEPARTURE_FIELDS = ("departure", "departureTime", "departAt")
ARRIVAL_FIELDS = ("arrival", "arrivalTime", "arriveAt")


def _first_valid(item: dict, fields, coerce):
    for name in fields:
        if name not in item:
            continue
        value = coerce(item[name])
        if value is not None:
            return value
    return None


def _coerce_price(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return _first_valid(value, ("amount", "total", "value", "formatted"), _coerce_price)
    if isinstance(value, (int, float)):
        price = int(round(value))
    elif isinstance(value, str):
        match = PRICE_TEXT_RE.match(value)
        if not match:
            return None
        price = int(match.group(1).replace(",", ""))
    else:
        return None
    return price if price_in_band(price) else None


def _coerce_duration(value) -> int | None:
    minutes = parse_duration_to_minutes(value)
    if minutes is None or not duration_is_plausible(minutes):
        return None
    return minutes


def _coerce_stops(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, list):
        return len(value)
    return None


def _coerce_carrier(value) -> Carrier | None:
    if isinstance(value, dict):
        code = value.get("code") or value.get("airlineCode") or value.get("iata")
        name = value.get("name") or value.get("airlineName")
        if not code and not name:
            return None
        code = code or airline_code(name)
        return Carrier(code=code, name=name or airline_name(code) or code)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if len(raw) == 2 and raw.isalnum():
            code = raw.upper()
            return Carrier(code=code, name=airline_name(code) or code)
        return Carrier(code=airline_code(raw), name=raw)
    return None


def _coerce_datetime(value) -> str | None:
    """ISO datetime or bare clock; clocks are kept as `HH:MM` and anchored later."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    match = CLOCK_RE.match(raw)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return f"{hours:02d}:{minutes:02d}"
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None).isoformat(timespec="seconds")


def _anchor(ctx: ExtractionContext, value: str | None, reference: str | None = None) -> str | None:
    if value is None or "T" in value:
        return value
    if reference is not None and "T" in reference:
        reference = reference.split("T", 1)[1][:5]
    return iso_timestamp(ctx.departure_date, value, reference=reference)


def normalize_embedded_item(item, ctx: ExtractionContext) -> FlightOffer | None:
    """One offer from an embedded-data item, or None when it has no usable price."""
    if not isinstance(item, dict):
        return None

    price = _first_valid(item, PRICE_FIELDS, _coerce_price)
    if price is None:
        return None

    duration = _first_valid(item, DURATION_FIELDS, _coerce_duration)
    stops = _first_valid(item, STOPS_FIELDS, _coerce_stops)
    carrier = _first_valid(item, CARRIER_FIELDS, _coerce_carrier)
    if carrier is None or not carrier.code:
        # An airline we cannot code is replaced whole, never mixed with the default.
        carrier = DEFAULT_CARRIER
    departure = _first_valid(item, DEPARTURE_FIELDS, _coerce_datetime)
    arrival = _first_valid(item, ARRIVAL_FIELDS, _coerce_datetime)

    return FlightOffer(
        price=price,
        origin=ctx.origin_place,
        destination=ctx.destination_place,
        departure=_anchor(ctx, departure),
        arrival=_anchor(ctx, arrival, reference=departure),
        duration_minutes=duration,
        stop_count=stops if stops is not None else 0,
        marketing_carrier=carrier,
    )
