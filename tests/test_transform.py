from coffeehaus.etl import transform
from coffeehaus.models import WEEKDAYS, DayHours


def test_parse_address_splits_by_position():
    street, city, state, zip_code, country = transform.parse_address("1 Ferry Building, San Francisco, CA 94111")
    assert street == "1 Ferry Building"
    assert city == "San Francisco"
    assert state == "CA"
    assert zip_code == "94111"
    assert country == "US"


def test_parse_address_handles_zip_plus_four_and_country_suffix():
    street, city, state, zip_code, _ = transform.parse_address("500 W 2nd St, Suite 10, Austin, TX 78701-1234, United States")
    assert street == "500 W 2nd St, Suite 10"
    assert city == "Austin"
    assert state == "TX"
    assert zip_code == "78701-1234"


def test_parse_address_defaults_to_empty_strings():
    assert transform.parse_address("Somewhere") == ("", "", "", "", "US")
    assert transform.parse_address(None) == ("", "", "", "", "US")


def test_hours_open_24_hours():
    hours = transform.parse_hours("Open 24 hours")
    assert set(hours) == set(WEEKDAYS)
    assert all(day == DayHours(open="00:00", close="23:59", is_closed=False) for day in hours.values())


def test_hours_closed_then_opens_uses_default_close():
    hours = transform.parse_hours("Closed ⋅ Opens 7 AM")
    assert set(hours) == set(WEEKDAYS)
    assert hours["monday"] == DayHours(open="07:00", close="22:00", is_closed=False)


def test_hours_open_with_closing_time_uses_default_open():
    hours = transform.parse_hours("Open ⋅ Closes 9:30 PM")
    assert hours["sunday"] == DayHours(open="06:00", close="21:30", is_closed=False)


def test_hours_unparseable_text_is_absent():
    assert transform.parse_hours("Hours might differ") is None
    assert transform.parse_hours("Temporarily closed") is None
    assert transform.parse_hours("") is None


def test_hours_structured_map():
    hours = transform.parse_hours(
        {
            "Monday": "7:00 AM - 5:00 PM",
            "tuesday": "6 AM–10 PM",
            "wednesday": "Closed",
            "thursday": "7–11 AM",
            "friday": "whenever",
        }
    )
    assert hours["monday"] == DayHours(open="07:00", close="17:00")
    assert hours["tuesday"] == DayHours(open="06:00", close="22:00")
    assert hours["wednesday"].is_closed is True
    assert hours["thursday"] == DayHours(open="07:00", close="11:00")
    assert hours["friday"].is_closed is True


def test_hours_structured_list_of_days():
    hours = transform.parse_hours([{"saturday": "Open 24 hours"}, {"sunday": "12 PM - 12 AM"}])
    assert hours["saturday"] == DayHours(open="00:00", close="23:59")
    assert hours["sunday"] == DayHours(open="12:00", close="00:00")


def test_parse_price_level():
    assert transform.parse_price_level("$$") == 2
    assert transform.parse_price_level("€€€€") == 4
    assert transform.parse_price_level("Moderate") == 2
    assert transform.parse_price_level("very expensive") == 4
    assert transform.parse_price_level("$$$$$") is None
    assert transform.parse_price_level("cheap-ish") is None
    assert transform.parse_price_level(None) is None


def test_coffee_filter_and_categories():
    assert transform.is_coffee_related(["Coffee shop"])
    assert transform.is_coffee_related(["book_store", "cafe"])
    assert not transform.is_coffee_related(["gas_station"])
    assert transform.extract_categories(["cafe", "coffee_shop", "book_store", "bakery"]) == [
        "Coffee Shop",
        "Book Store",
        "Bakery",
    ]


def test_to_shop_normalizes_local_result():
    raw = {
        "title": "Blue Bottle Coffee",
        "place_id": "ChIJ123",
        "address": "66 Mint St, San Francisco, CA 94103",
        "gps_coordinates": {"latitude": 37.782, "longitude": -122.407},
        "rating": 4.5,
        "reviews": "1,204",
        "price": "$$",
        "type": "Coffee shop",
        "hours": "Closed ⋅ Opens 7 AM",
        "thumbnail": "https://img/1.jpg",
        "popular_times": [{"day": "monday"}],
    }

    shop = transform.to_shop(raw)

    assert shop.name == "Blue Bottle Coffee"
    assert shop.external_id == "ChIJ123"
    assert shop.city == "San Francisco"
    assert (shop.latitude, shop.longitude) == (37.782, -122.407)
    assert shop.review_count == 1204
    assert shop.price_level == 2
    assert shop.categories == ["Coffee Shop"]
    assert shop.photos == ["https://img/1.jpg"]
    assert shop.hours["friday"].open == "07:00"
    assert shop.id is None


def test_to_shop_drops_half_coordinates_and_non_coffee_places():
    shop = transform.to_shop({"title": "Cafe X", "type": "cafe", "gps_coordinates": {"latitude": 1.0}})
    assert shop.latitude is None and shop.longitude is None

    assert transform.to_shop({"title": "Shell", "type": "gas_station"}) is None
    assert transform.to_shop({"type": "cafe"}) is None


def test_details_to_shop_collects_photos():
    shop = transform.details_to_shop(
        {
            "title": "Ritual",
            "address": "1026 Valencia St, San Francisco, CA 94110",
            "photos": [{"image": "a.jpg"}, {"image": "a.jpg"}, {"thumbnail": "t.jpg"}],
        }
    )
    assert shop.photos == ["a.jpg"]
    assert shop.categories == ["Coffee Shop"]


def test_extract_local_results_nested_dict():
    assert transform.extract_local_results({"local_results": {"places": [{"title": "A"}, "junk"]}}) == [{"title": "A"}]
    assert transform.extract_local_results({}) == []
