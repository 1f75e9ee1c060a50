import logging
import time
from datetime import datetime, timezone

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from flights.providers.base import FetchError
from flights.serializers import FlightQuerySerializer
from flights.services import get_flight_service

logger = logging.getLogger(__name__)


class HealthView(APIView):
    def get(self, request):
        service = get_flight_service()
        last_write = service.get_last_write_timestamp()
        age = int(time.time()) - last_write if last_write else None

        return Response(
            {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
                "cache": {
                    "last_scrape_age_seconds": age,
                    "ttl_seconds": service.get_configured_ttl(),
                },
            }
        )


class FlightSearchView(APIView):
    def get(self, request):
        serializer = FlightQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(
                {"error": "Validation failed", "messages": serializer.errors},
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        query = serializer.to_query()

        try:
            result = get_flight_service().get_flights(query)
        except FetchError as exc:
            logger.warning(
                "Flight search failed",
                extra={"status_code": exc.status_code, "retryable": exc.retryable, "details": exc.details},
            )
            return Response(
                {"error": "Failed to fetch flight data", "message": str(exc)},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(
            {
                "flights": [offer.to_dict() for offer in result.offers],
                "meta": {
                    "source": result.source,
                    "strategy": result.strategy,
                    "synthetic": result.synthetic,
                    "cachedAt": datetime.fromtimestamp(result.written_at, tz=timezone.utc).isoformat(timespec="seconds"),
                },
            }
        )
