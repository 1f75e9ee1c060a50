from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

IATA_CODE_RE = re.compile(r"^[A-Z]{3}$")

STRATEGY_SYNTHETIC = "synthetic"


@dataclass(frozen=True)
class RouteQuery:
    """A round-trip search. Fully determines the cache key."""

    origin: str
    destination: str
    departure_date: date
    return_date: date

    def __post_init__(self):
        origin = (self.origin or "").strip().upper()
        destination = (self.destination or "").strip().upper()
        if not IATA_CODE_RE.match(origin):
            raise ValueError(f"Invalid origin code: {self.origin!r}")
        if not IATA_CODE_RE.match(destination):
            raise ValueError(f"Invalid destination code: {self.destination!r}")
        if self.return_date < self.departure_date:
            raise ValueError("Return date must be on or after departure date.")
        # frozen: normalized codes have to be written through object.__setattr__
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "destination", destination)

    def cache_token(self) -> str:
        return (
            f"{self.origin}_{self.destination}_"
            f"{self.departure_date.isoformat()}_{self.return_date.isoformat()}"
        )


@dataclass(frozen=True)
class Place:
    code: str
    city: str

    def to_dict(self) -> dict:
        return {"code": self.code, "city": self.city}


@dataclass(frozen=True)
class Carrier:
    code: str | None
    name: str | None

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name}


@dataclass(frozen=True)
class FlightOffer:
    price: int
    origin: Place
    destination: Place
    departure: str | None
    arrival: str | None
    duration_minutes: int | None
    stop_count: int
    marketing_carrier: Carrier
    currency: str = "USD"
    flight_number: str | None = None

    @property
    def operating_carrier(self) -> Carrier:
        # The results page never distinguishes operating from marketing carrier.
        return self.marketing_carrier

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "currency": self.currency,
            "origin": self.origin.to_dict(),
            "destination": self.destination.to_dict(),
            "departure": self.departure,
            "arrival": self.arrival,
            "durationInMinutes": self.duration_minutes,
            "stopCount": self.stop_count,
            "flightNumber": self.flight_number,
            "marketingCarrier": self.marketing_carrier.to_dict(),
            "operatingCarrier": self.operating_carrier.to_dict(),
        }


@dataclass(frozen=True)
class Extraction:
    offers: tuple[FlightOffer, ...]
    strategy: str

    @property
    def synthetic(self) -> bool:
        return self.strategy == STRATEGY_SYNTHETIC
