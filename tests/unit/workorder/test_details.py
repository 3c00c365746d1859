from servicebook.maintenance.categories import MaintenanceCategory
from servicebook.workorder.details import (
    ServiceDetails,
    leading_capacity,
    parse_decimal,
)


class TestLegacyShapes:
    def test_checkbox_and_code_shapes(self) -> None:
        details = ServiceDetails.model_validate(
            {
                "filters": {
                    "oil": True,
                    "air": "AMPI 1154",
                    "fuelCode": "G10230",
                    "cabin": False,
                },
                "filterDetails": {"cabin": "HM 220"},
            }
        )

        assert details.filters["oil"].changed is True
        assert details.filters["oil"].code is None
        assert details.filter_code("air") == "AMPI 1154"
        assert details.filter_code("fuel") == "G10230"
        # A code elsewhere marks the slot even when the checkbox is off
        assert details.filter_code("cabin") == "HM 220"

    def test_unset_slots_are_dropped(self) -> None:
        details = ServiceDetails.model_validate(
            {"filters": {"oil": False, "air": "x", "fuel": ""}}
        )
        assert details.filters == {}

    def test_current_shape_survives_revalidation(self) -> None:
        details = ServiceDetails.model_validate({"filters": {"oil": "MAP 3614"}})
        dumped = details.model_dump(mode="json", exclude_none=True)

        again = ServiceDetails.model_validate(dumped)
        assert again == details

    def test_unchecked_fluids_are_dropped(self) -> None:
        details = ServiceDetails.model_validate(
            {"fluids": {"coolant": True, "brakes": "DOT4", "gearbox": False}}
        )
        assert details.fluids == {"coolant": True, "brakes": "DOT4"}

    def test_unknown_keys_are_ignored(self) -> None:
        details = ServiceDetails.model_validate({"items": [{"name": "x"}]})
        assert details.oil is None


class TestNumbers:
    def test_parse_decimal(self) -> None:
        assert parse_decimal("4,5") == 4.5
        assert parse_decimal(4) == 4.0
        assert parse_decimal("") is None
        assert parse_decimal("cuatro") is None
        assert parse_decimal(None) is None

    def test_liters_accept_decimal_comma(self) -> None:
        details = ServiceDetails.model_validate({"oil": {"liters": "3,5"}})
        assert details.oil is not None
        assert details.oil.liters == 3.5

    def test_leading_capacity(self) -> None:
        assert leading_capacity("4.5L Elaion") == 4.5
        assert leading_capacity("3,5 LTS F30") == 3.5
        assert leading_capacity("F30") is None
        assert leading_capacity(None) is None

    def test_oil_capacity_prefers_liters(self) -> None:
        details = ServiceDetails.model_validate(
            {"oil": {"type": "4L F30", "liters": 3.5}}
        )
        assert details.oil_capacity() == 3.5

    def test_oil_capacity_from_type(self) -> None:
        details = ServiceDetails.model_validate({"oil": {"type": "4L F30"}})
        assert details.oil_capacity() == 4.0


class TestSearchText:
    def test_engine_oil_does_not_look_like_oil_filter(self) -> None:
        details = ServiceDetails.model_validate(
            {"oil": {"brand": "YPF", "type": "Elaion F30"}}
        )
        text = details.search_text()

        assert '"engine_oil":' in text
        assert '"oil":' not in text
        assert "elaion f30" in text

    def test_changed_filters_are_keyed_by_slot(self) -> None:
        details = ServiceDetails.model_validate(
            {"filters": {"oil": True, "air": False}}
        )
        text = details.search_text()

        assert '"oil":' in text
        assert '"air":' not in text

    def test_empty_bag(self) -> None:
        assert ServiceDetails().search_text() == ""


class TestStructuredDetail:
    def test_engine_oil(self) -> None:
        details = ServiceDetails.model_validate(
            {"oil": {"brand": "YPF", "type": "F30 4L"}}
        )
        assert details.structured_detail(MaintenanceCategory.ENGINE_OIL) == "YPF F30 4L"

    def test_filter_code_or_changed(self) -> None:
        details = ServiceDetails.model_validate(
            {"filters": {"oil": "MAP 3614", "air": True}}
        )
        assert details.structured_detail(MaintenanceCategory.OIL_FILTER) == "MAP 3614"
        assert details.structured_detail(MaintenanceCategory.AIR_FILTER) == "Changed"
        assert details.structured_detail(MaintenanceCategory.FUEL_FILTER) is None

    def test_fluids(self) -> None:
        details = ServiceDetails.model_validate(
            {"fluids": {"coolant": True, "brakes": "DOT4 nuevo"}}
        )
        assert details.structured_detail(MaintenanceCategory.COOLANT) == "Checked"
        assert details.structured_detail(MaintenanceCategory.BRAKE_FLUID) == "DOT4 nuevo"
        assert details.structured_detail(MaintenanceCategory.GEARBOX_OIL) is None

    def test_services_have_no_structured_value(self) -> None:
        details = ServiceDetails.model_validate({"battery": {"voltage": "12,6"}})
        assert details.structured_detail(MaintenanceCategory.BATTERY) is None
        assert details.battery is not None
        assert details.battery.voltage == 12.6
