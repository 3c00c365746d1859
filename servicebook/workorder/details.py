"""
Service-detail bag stored on each work order.

Older tickets were typed by hand into a handful of shapes; validation folds
them all into one model so the rest of the engine reads a single layout:

- ``filters.oil = true``            -> changed, no code
- ``filters.oil = "MAP 3614"``      -> changed, code "MAP 3614"
- ``filters.oilCode = "..."``       -> code for the oil slot
- ``filterDetails.oil = "..."``     -> code for the oil slot
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from servicebook.maintenance.categories import MaintenanceCategory, fold

FILTER_SLOTS: dict[str, MaintenanceCategory] = {
    "oil": MaintenanceCategory.OIL_FILTER,
    "air": MaintenanceCategory.AIR_FILTER,
    "fuel": MaintenanceCategory.FUEL_FILTER,
    "cabin": MaintenanceCategory.CABIN_FILTER,
}

FLUID_SLOTS: dict[MaintenanceCategory, str] = {
    MaintenanceCategory.GEARBOX_OIL: "gearbox",
    MaintenanceCategory.COOLANT: "coolant",
    MaintenanceCategory.BRAKE_FLUID: "brakes",
}

_LEADING_CAPACITY = re.compile(r"^(\d+([.,]\d+)?)\s*(L|LTS|LTS\.)?", re.IGNORECASE)


def parse_decimal(value: Any) -> float | None:
    """Numbers typed with a decimal comma ("4,5") or left blank."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def leading_capacity(text: str | None) -> float | None:
    if not text:
        return None
    match = _LEADING_CAPACITY.match(text.strip())
    return parse_decimal(match.group(1)) if match else None


class OilRecord(BaseModel):
    brand: str | None = None
    type: str | None = None
    liters: float | None = None

    @field_validator("liters", mode="before")
    @classmethod
    def _coerce_liters(cls, value: Any) -> float | None:
        return parse_decimal(value)

    def is_empty(self) -> bool:
        return not (self.brand or self.type or self.liters)


class FilterSlot(BaseModel):
    changed: bool = False
    code: str | None = None


class BatteryReading(BaseModel):
    voltage: float | None = None

    @field_validator("voltage", mode="before")
    @classmethod
    def _coerce_voltage(cls, value: Any) -> float | None:
        return parse_decimal(value)


def _code_text(value: Any) -> str | None:
    # Single characters are checkbox noise, not codes.
    if isinstance(value, str) and len(value.strip()) > 1:
        return value.strip()
    return None


class ServiceDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    oil: OilRecord | None = None
    filters: dict[str, FilterSlot] = Field(default_factory=dict)
    fluids: dict[str, bool | str] = Field(default_factory=dict)
    battery: BatteryReading | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        raw_filters = data.get("filters") or {}
        extra_codes = data.pop("filterDetails", None) or {}

        filters: dict[str, dict[str, Any]] = {}
        for slot in FILTER_SLOTS:
            value = raw_filters.get(slot)
            changed = False
            code = None

            if isinstance(value, dict):
                changed = bool(value.get("changed"))
                code = _code_text(value.get("code"))
            elif value is True:
                changed = True
            elif isinstance(value, str):
                code = _code_text(value)

            code = (
                code
                or _code_text(raw_filters.get(f"{slot}Code"))
                or _code_text(extra_codes.get(slot))
            )
            if changed or code:
                filters[slot] = {"changed": True, "code": code}
        data["filters"] = filters

        fluids = data.get("fluids") or {}
        data["fluids"] = {
            k: v
            for k, v in fluids.items()
            if v is True or (isinstance(v, str) and v.strip())
        }
        return data

    def filter_code(self, slot: str) -> str | None:
        entry = self.filters.get(slot)
        return entry.code if entry else None

    def oil_capacity(self) -> float | None:
        if self.oil is None:
            return None
        return self.oil.liters or leading_capacity(self.oil.type)

    def search_text(self) -> str:
        """Lower-cased JSON of the populated parts of the bag.

        Engine oil is keyed ``engine_oil`` so that a ``"oil":`` keyword only
        hits the oil-filter slot.
        """
        parts: dict[str, Any] = {}
        if self.oil is not None and not self.oil.is_empty():
            parts["engine_oil"] = self.oil.model_dump(exclude_none=True)
        if self.filters:
            parts["filters"] = {
                slot: entry.model_dump(exclude_none=True)
                for slot, entry in self.filters.items()
            }
        if self.fluids:
            parts["fluids"] = self.fluids
        if self.battery is not None and self.battery.voltage is not None:
            parts["battery"] = self.battery.model_dump(exclude_none=True)
        if not parts:
            return ""
        return fold(json.dumps(parts, ensure_ascii=False))

    def structured_detail(self, category: MaintenanceCategory) -> str | None:
        """The most precise description the bag has for `category`, if any."""
        if category is MaintenanceCategory.ENGINE_OIL:
            if self.oil is None:
                return None
            parts = [p for p in (self.oil.brand, self.oil.type) if p]
            return " ".join(parts) or None

        for slot, slot_category in FILTER_SLOTS.items():
            if slot_category is category:
                entry = self.filters.get(slot)
                if entry is None:
                    return None
                return entry.code or "Changed"

        fluid = FLUID_SLOTS.get(category)
        if fluid is not None:
            value = self.fluids.get(fluid)
            if value is None:
                return None
            return value if isinstance(value, str) else "Checked"
        return None
