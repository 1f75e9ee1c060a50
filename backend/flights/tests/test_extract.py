from datetime import date

from django.test import SimpleTestCase

from flights.offers import Carrier
from flights.services.extract import (
    STRATEGIES,
    extract_cards,
    extract_offers,
    extract_patterns,
    find_clock_times,
    find_prices,
    page_text,
)
from flights.services.normalize import ExtractionContext
from flights.tests.samples import (
    EMPTY_RESULTS_HTML,
    KAYAK_MIXED_CARDS_HTML,
    KAYAK_RESULTS_HTML,
    data_flights_html,
    next_data_html,
    preloaded_state_html,
)

DEPARTURE = date(2026, 1, 12)
CTX = ExtractionContext("AGP", "MAD", DEPARTURE)


def extract(markup, **kwargs):
    return extract_offers(markup, "AGP", "MAD", departure_date=DEPARTURE, **kwargs)


class EmbeddedDataExtractionTests(SimpleTestCase):
    def test_embedded_payload_wins_over_page_text(self):
        markup = next_data_html(
            [
                {
                    "price": 123,
                    "duration": 80,
                    "stops": 0,
                    "airline": {"code": "VY", "name": "Vueling"},
                    "departure": "07:10",
                    "arrival": "08:30",
                }
            ],
            extra_body="<p>Deals from $99</p>",
        )

        result = extract(markup)

        self.assertEqual(result.strategy, "embedded")
        self.assertEqual(len(result.offers), 1)
        offer = result.offers[0]
        self.assertEqual(offer.price, 123)
        self.assertEqual(offer.duration_minutes, 80)
        self.assertEqual(offer.departure, "2026-01-12T07:10:00")
        self.assertEqual(offer.arrival, "2026-01-12T08:30:00")
        self.assertEqual(offer.marketing_carrier, Carrier(code="VY", name="Vueling"))

    def test_alternate_field_names_and_unusable_items(self):
        markup = preloaded_state_html(
            {
                "flightResults": [
                    {"displayPrice": "$1,250", "totalDuration": "PT2H5M", "numberOfStops": 1, "carrier": "Ryanair"},
                    {"amount": 15},
                    {"airline": "Iberia"},
                    "not-an-offer",
                ]
            }
        )

        result = extract(markup)

        self.assertEqual(result.strategy, "embedded")
        self.assertEqual(len(result.offers), 1)
        offer = result.offers[0]
        self.assertEqual(offer.price, 1250)
        self.assertEqual(offer.duration_minutes, 125)
        self.assertEqual(offer.stop_count, 1)
        self.assertEqual(offer.marketing_carrier, Carrier(code="FR", name="Ryanair"))
        self.assertIsNone(offer.departure)
        self.assertIsNone(offer.arrival)

    def test_data_attribute_payload_is_entity_decoded(self):
        markup = data_flights_html(
            [
                {
                    "totalPrice": 199.6,
                    "flightDuration": "1h 30m",
                    "stopCount": "2",
                    "marketingCarrier": {"code": "UX"},
                    "departAt": "2026-01-12T23:40:00Z",
                    "arriveAt": "00:55",
                }
            ]
        )

        result = extract(markup)

        self.assertEqual(result.strategy, "embedded")
        offer = result.offers[0]
        self.assertEqual(offer.price, 200)
        self.assertEqual(offer.duration_minutes, 90)
        self.assertEqual(offer.stop_count, 2)
        self.assertEqual(offer.marketing_carrier, Carrier(code="UX", name="Air Europa"))
        self.assertEqual(offer.departure, "2026-01-12T23:40:00")
        self.assertEqual(offer.arrival, "2026-01-13T00:55:00")

    def test_missing_carrier_falls_back_to_default(self):
        result = extract(next_data_html([{"price": 300}]))

        offer = result.offers[0]
        self.assertEqual(offer.marketing_carrier, Carrier(code="IB", name="Iberia"))
        self.assertEqual(offer.stop_count, 0)
        self.assertIsNone(offer.duration_minutes)

    def test_payload_without_usable_offers_falls_through(self):
        markup = next_data_html([{"price": "free"}], extra_body="<p>$140</p>")

        result = extract(markup)

        self.assertEqual(result.strategy, "pattern")
        self.assertEqual([o.price for o in result.offers], [140])


class CardExtractionTests(SimpleTestCase):
    def test_results_page_markup(self):
        result = extract(KAYAK_RESULTS_HTML)

        self.assertEqual(result.strategy, "cards")
        self.assertEqual([o.price for o in result.offers], [71, 85])

        first, second = result.offers
        self.assertEqual(first.departure, "2026-01-12T05:00:00")
        self.assertEqual(first.arrival, "2026-01-12T06:15:00")
        self.assertEqual(first.duration_minutes, 75)
        self.assertEqual(first.stop_count, 0)
        self.assertEqual(first.marketing_carrier, Carrier(code="UX", name="Air Europa"))
        self.assertEqual(second.departure, "2026-01-12T10:30:00")
        self.assertEqual(second.marketing_carrier, Carrier(code="IB", name="Iberia"))

    def test_fields_stay_with_their_card(self):
        offers = extract_cards(KAYAK_MIXED_CARDS_HTML, CTX)

        self.assertEqual([o.price for o in offers], [120, 98, 1150])
        self.assertEqual([o.stop_count for o in offers], [0, 0, 2])
        self.assertEqual([o.marketing_carrier.code for o in offers], ["VY", "I2", "IB"])
        self.assertEqual([o.duration_minutes for o in offers], [75, 255, 320])
        self.assertEqual(offers[2].departure, "2026-01-12T18:30:00")
        self.assertEqual(offers[2].arrival, "2026-01-12T23:50:00")

    def test_flat_token_pairing_loses_per_card_stops(self):
        offers = extract_patterns(KAYAK_MIXED_CARDS_HTML, CTX)

        self.assertEqual([o.stop_count for o in offers], [0, 2, 0])

    def test_fallback_card_selectors(self):
        markup = '<div class="resultInner"><span class="price">$140</span><span class="time">21:10</span></div>'

        offers = extract_cards(markup, CTX)

        self.assertEqual(len(offers), 1)
        self.assertEqual(offers[0].departure, "2026-01-12T21:10:00")
        self.assertTrue(70 <= offers[0].duration_minutes <= 80)

    def test_nested_card_is_counted_once(self):
        markup = '<div class="resultWrapper"><div class="flight-result"><span class="price">$140</span></div></div>'

        self.assertEqual(len(extract_cards(markup, CTX)), 1)

    def test_cards_without_prices_fall_through(self):
        markup = '<div class="resultWrapper"><span class="price">Sold out</span></div><p>From $150</p>'

        result = extract(markup)

        self.assertEqual(result.strategy, "pattern")
        self.assertEqual([o.price for o in result.offers], [150])


class PatternExtractionTests(SimpleTestCase):
    def test_results_page_text_pairs_tokens(self):
        first, second = extract_patterns(KAYAK_RESULTS_HTML, CTX)

        self.assertEqual([first.price, second.price], [71, 85])
        self.assertEqual(first.departure, "2026-01-12T05:00:00")
        self.assertEqual(first.arrival, "2026-01-12T06:15:00")
        self.assertEqual(first.duration_minutes, 75)
        self.assertEqual(first.stop_count, 0)
        self.assertEqual(first.marketing_carrier, Carrier(code="UX", name="Air Europa"))
        self.assertEqual(second.departure, "2026-01-12T10:30:00")
        self.assertEqual(second.arrival, "2026-01-12T11:45:00")
        self.assertEqual(second.marketing_carrier, Carrier(code="IB", name="Iberia"))

    def test_two_prices_two_clock_tokens(self):
        markup = "<div><b>$71</b> <i>08:10</i> <i>09:25</i></div><div><b>$85</b></div>"

        result = extract(markup)

        self.assertEqual(result.strategy, "pattern")
        self.assertEqual([o.price for o in result.offers], [71, 85])
        for offer in result.offers:
            self.assertIsNotNone(offer.departure)
            self.assertIsNotNone(offer.arrival)
        self.assertEqual(result.offers[0].departure, "2026-01-12T08:10:00")
        self.assertEqual(result.offers[0].duration_minutes, 75)
        # second offer has no clock tokens left and uses the fallback timetable
        self.assertEqual(result.offers[1].departure, "2026-01-12T07:30:00")
        self.assertEqual(result.offers[1].arrival, "2026-01-12T08:45:00")

    def test_lone_departure_gets_derived_arrival_across_midnight(self):
        result = extract("<p>$120 leaves 23:50</p>")

        offer = result.offers[0]
        self.assertEqual(offer.departure, "2026-01-12T23:50:00")
        self.assertEqual(offer.arrival[:10], "2026-01-13")
        self.assertTrue(70 <= offer.duration_minutes <= 80)

    def test_overnight_pair_rolls_arrival_date(self):
        result = extract("<p>$99</p><p>23:30</p><p>00:45</p>")

        offer = result.offers[0]
        self.assertEqual(offer.arrival, "2026-01-13T00:45:00")
        self.assertEqual(offer.duration_minutes, 75)

    def test_long_duration_token_is_ignored_for_offer(self):
        result = extract("<p>$310</p><p>09:00</p><p>10:20</p><p>7h 05m</p><p>1 stop</p>")

        offer = result.offers[0]
        self.assertEqual(offer.duration_minutes, 80)
        self.assertEqual(offer.stop_count, 1)

    def test_out_of_band_prices_are_noise(self):
        result = extract("<p>$5 $12 $5000 $2,500 $120 $120</p>")

        self.assertEqual([o.price for o in result.offers], [120])

    def test_at_most_ten_offers(self):
        markup = " ".join(f"<p>${price}</p>" for price in range(100, 112))

        result = extract(markup)

        self.assertEqual(len(result.offers), 10)
        self.assertEqual(result.offers[-1].price, 109)

    def test_airlines_cycle_over_offers(self):
        markup = "<p>Vueling $60</p><p>Ryanair $70</p><p>$80</p>"

        result = extract(markup)

        codes = [o.marketing_carrier.code for o in result.offers]
        self.assertEqual(codes, ["VY", "FR", "VY"])

    def test_no_prices_means_no_offers(self):
        self.assertEqual(extract_patterns("<p>06:00 07:15</p>", CTX), [])


class TokenScanTests(SimpleTestCase):
    def test_find_prices_dedupes_in_order(self):
        self.assertEqual(find_prices("$85 $71 $85 $1,200 $29 $30"), [85, 71, 1200, 30])

    def test_find_clock_times(self):
        self.assertEqual(
            find_clock_times("6:30 pm, 8:05 PM, 25:10, 10:61, 12:15 am, 09:00, 09:00"),
            ["18:30", "20:05", "00:15", "09:00"],
        )

    def test_page_text_drops_scripts_and_tags(self):
        text = page_text("<style>.a{}</style><script>var x = '$150';</script><p>Fares &amp; deals</p>")
        self.assertNotIn("$150", text)
        self.assertIn("Fares & deals", text)

    def test_page_text_ignores_attribute_values(self):
        text = page_text('<div title="fares > $45 today" data-range="a>b">No results</div>')

        self.assertNotIn("$45", text)
        self.assertEqual(text.split(), ["No", "results"])

    def test_page_text_drops_comments(self):
        text = page_text("<!-- cached fare $99 --><p>Loading</p>")

        self.assertNotIn("$99", text)
        self.assertIn("Loading", text)

    def test_page_text_drops_script_with_escaped_closing_tag(self):
        text = page_text(r'<script>document.write("<\/script>"); var fare = "$150";</script><p>Loading</p>')

        self.assertNotIn("$150", text)
        self.assertIn("Loading", text)


class FallbackExtractionTests(SimpleTestCase):
    def test_prices_only_inside_scripts_use_regex_fallback(self):
        markup = (
            '<html><body><script>var fares = ["$150", "$175", "$190", "$210", "$230", "$250"];</script>'
            "<p>Loading</p></body></html>"
        )

        result = extract(markup)

        self.assertEqual(result.strategy, "regex")
        self.assertEqual([o.price for o in result.offers], [150, 175, 190, 210, 230])
        first = result.offers[0]
        self.assertEqual(first.departure, "2026-01-12T06:00:00")
        self.assertEqual(first.arrival, "2026-01-12T07:15:00")
        self.assertEqual(first.stop_count, 0)
        self.assertEqual(first.marketing_carrier, Carrier(code="IB", name="Iberia"))

    def test_price_only_in_attribute_uses_regex_fallback(self):
        result = extract('<div title="fares > $45 today">No results</div>')

        self.assertEqual(result.strategy, "regex")
        self.assertEqual([o.price for o in result.offers], [45])

    def test_no_signals_yields_synthetic_ladder(self):
        result = extract(EMPTY_RESULTS_HTML)

        self.assertEqual(result.strategy, "synthetic")
        self.assertTrue(result.synthetic)
        self.assertEqual([o.price for o in result.offers], [89 + 15 * i for i in range(10)])
        self.assertEqual([o.stop_count for o in result.offers], [0, 0, 0, 0, 0, 1, 1, 1, 2, 2])
        self.assertEqual(result.offers[9].arrival, "2026-01-13T03:10:00")
        for offer in result.offers:
            self.assertTrue(30 < offer.duration_minutes < 2000)

    def test_empty_markup_yields_synthetic_ladder(self):
        self.assertEqual(extract("").strategy, "synthetic")
        self.assertEqual(extract(None).strategy, "synthetic")

    def test_failing_strategy_falls_through(self):
        def boom(markup, ctx):
            raise ValueError("schema changed")

        result = extract(KAYAK_RESULTS_HTML, strategies=(("boom", boom),) + STRATEGIES[1:])

        self.assertEqual(result.strategy, "cards")

    def test_all_strategies_empty(self):
        result = extract(KAYAK_RESULTS_HTML, strategies=(("nothing", lambda markup, ctx: []),))

        self.assertEqual(result.offers, ())
        self.assertEqual(result.strategy, "none")


class OfferShapeTests(SimpleTestCase):
    def test_offer_invariants_hold_for_every_strategy(self):
        samples = [
            next_data_html([{"price": 123}]),
            KAYAK_RESULTS_HTML,
            "<script>'$150'</script>",
            EMPTY_RESULTS_HTML,
        ]
        for markup in samples:
            for offer in extract(markup).offers:
                self.assertEqual(offer.currency, "USD")
                self.assertIsNone(offer.flight_number)
                self.assertEqual(offer.operating_carrier, offer.marketing_carrier)
                self.assertTrue(30 <= offer.price <= 2000)
                self.assertGreaterEqual(offer.stop_count, 0)

    def test_to_dict_shape(self):
        offer = extract(KAYAK_RESULTS_HTML).offers[0]

        data = offer.to_dict()

        self.assertEqual(data["origin"], {"code": "AGP", "city": "Málaga"})
        self.assertEqual(data["destination"], {"code": "MAD", "city": "Madrid"})
        self.assertEqual(data["durationInMinutes"], 75)
        self.assertEqual(data["operatingCarrier"], data["marketingCarrier"])
        self.assertIsNone(data["flightNumber"])

    def test_unknown_airport_code_is_its_own_city(self):
        offer = extract_offers(KAYAK_RESULTS_HTML, "XYZ", "MAD", departure_date=DEPARTURE).offers[0]

        self.assertEqual(offer.origin.city, "XYZ")
