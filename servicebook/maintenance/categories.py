"""
Category keyword table.

Static configuration shared by the status deriver and the estimate
synthesizer. Keywords are matched as lower-case, accent-free substrings
against line-item descriptions, notes, service names and the serialized
service-detail bag. Table order is classification priority.
"""

from __future__ import annotations

import enum
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass


class MaintenanceCategory(enum.Enum):
    ENGINE_OIL = "engine_oil"
    OIL_FILTER = "oil_filter"
    AIR_FILTER = "air_filter"
    FUEL_FILTER = "fuel_filter"
    CABIN_FILTER = "cabin_filter"
    COOLANT = "coolant"
    BRAKE_FLUID = "brake_fluid"
    GEARBOX_OIL = "gearbox_oil"
    TYRES = "tyres"
    TIRE_ROTATION = "tire_rotation"
    WIPERS = "wipers"
    BATTERY = "battery"
    OTHER = "other"


class CategoryGroup(enum.Enum):
    FILTERS = "filters"
    FLUIDS = "fluids"
    SERVICES = "services"


FILTER_CATEGORIES = frozenset(
    {
        MaintenanceCategory.OIL_FILTER,
        MaintenanceCategory.AIR_FILTER,
        MaintenanceCategory.FUEL_FILTER,
        MaintenanceCategory.CABIN_FILTER,
    }
)


def fold(text: str) -> str:
    """Lower-case and strip accents ("Batería" -> "bateria")."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


@dataclass(frozen=True)
class CategoryRule:
    category: MaintenanceCategory
    label: str
    group: CategoryGroup
    keywords: tuple[str, ...]

    def matches(self, folded_text: str) -> bool:
        return any(k in folded_text for k in self.keywords)

    def matches_any(self, texts: Iterable[str | None]) -> bool:
        return any(t and self.matches(fold(t)) for t in texts)


CATEGORY_TABLE: tuple[CategoryRule, ...] = (
    CategoryRule(
        MaintenanceCategory.ENGINE_OIL,
        "Engine oil",
        CategoryGroup.FLUIDS,
        (
            "aceite motor",
            "aceite de motor",
            "cambio de aceite",
            "full service",
            "service completo",
            "full synthetic",
            "semi synthetic",
            "mineral oil",
            "5w30",
            "5w40",
            "10w40",
            "15w40",
            "0w20",
            "20w50",
            "mobil",
            "elaion",
            "shell",
            "helix",
            "valvoline",
            "castrol",
            "total",
            "motul",
            "petronas",
            "liqui moly",
            "gulf",
            "ypf",
            "lubricante",
            '"engine_oil":',
        ),
    ),
    CategoryRule(
        MaintenanceCategory.OIL_FILTER,
        "Oil filter",
        CategoryGroup.FILTERS,
        (
            "filtro aceite",
            "filtro de aceite",
            "unidad sellada",
            "full service",
            "service completo",
            '"oil":',
        ),
    ),
    # Before the air filter: "filtro aire acondicionado" is a cabin filter.
    CategoryRule(
        MaintenanceCategory.CABIN_FILTER,
        "Cabin filter",
        CategoryGroup.FILTERS,
        (
            "filtro habitaculo",
            "filtro de habitaculo",
            "filtro polen",
            "filtro de polen",
            "filtro aire acondicionado",
            "filtro de aire acondicionado",
            '"cabin":',
        ),
    ),
    CategoryRule(
        MaintenanceCategory.AIR_FILTER,
        "Air filter",
        CategoryGroup.FILTERS,
        ("filtro aire", "filtro de aire", '"air":'),
    ),
    CategoryRule(
        MaintenanceCategory.FUEL_FILTER,
        "Fuel filter",
        CategoryGroup.FILTERS,
        (
            "filtro combustible",
            "filtro de combustible",
            "filtro nafta",
            "filtro de nafta",
            "filtro gasoil",
            "filtro de gasoil",
            '"fuel":',
        ),
    ),
    CategoryRule(
        MaintenanceCategory.COOLANT,
        "Coolant",
        CategoryGroup.FLUIDS,
        ("refrigerante", "anticongelante", "agua destilada", '"coolant":'),
    ),
    CategoryRule(
        MaintenanceCategory.BRAKE_FLUID,
        "Brake fluid",
        CategoryGroup.FLUIDS,
        (
            "liquido freno",
            "liquido de freno",
            "liquido frenos",
            "liquido de frenos",
            '"brakes":',
        ),
    ),
    CategoryRule(
        MaintenanceCategory.GEARBOX_OIL,
        "Gearbox oil",
        CategoryGroup.FLUIDS,
        ("aceite caja", "aceite de caja", "valvulina", "transmision", '"gearbox":'),
    ),
    CategoryRule(
        MaintenanceCategory.TYRES,
        "Tyres",
        CategoryGroup.SERVICES,
        ("cubierta", "neumatico", "llanta", "goma"),
    ),
    CategoryRule(
        MaintenanceCategory.TIRE_ROTATION,
        "Rotation & alignment",
        CategoryGroup.SERVICES,
        ("rotacion", "alineacion", "balanceo"),
    ),
    CategoryRule(
        MaintenanceCategory.WIPERS,
        "Wipers",
        CategoryGroup.SERVICES,
        ("escobilla", "limpiaparabrisas"),
    ),
    CategoryRule(
        MaintenanceCategory.BATTERY,
        "Battery",
        CategoryGroup.SERVICES,
        ("bateria",),
    ),
)


def classify(
    text: str | None, table: Sequence[CategoryRule] = CATEGORY_TABLE
) -> MaintenanceCategory:
    """First category in table order whose keywords occur in `text`."""
    if not text:
        return MaintenanceCategory.OTHER
    folded = fold(text)
    for rule in table:
        if rule.matches(folded):
            return rule.category
    return MaintenanceCategory.OTHER
