from rest_framework import serializers

from flights.offers import RouteQuery


class FlightQuerySerializer(serializers.Serializer):
    origin = serializers.RegexField(r"^[A-Za-z]{3}$", max_length=3)
    destination = serializers.RegexField(r"^[A-Za-z]{3}$", max_length=3)
    departure_date = serializers.DateField(input_formats=["%Y-%m-%d"])
    return_date = serializers.DateField(input_formats=["%Y-%m-%d"])

    def validate(self, attrs):
        attrs["origin"] = attrs["origin"].strip().upper()
        attrs["destination"] = attrs["destination"].strip().upper()

        if attrs["return_date"] < attrs["departure_date"]:
            raise serializers.ValidationError({"return_date": "Return date must be on or after departure date."})

        return attrs

    def to_query(self) -> RouteQuery:
        data = self.validated_data
        return RouteQuery(
            origin=data["origin"],
            destination=data["destination"],
            departure_date=data["departure_date"],
            return_date=data["return_date"],
        )
