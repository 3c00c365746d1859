"""
Legacy descriptor normalizer.

Maps the free text typed on historical service tickets ("4 F50", "SUELTO F30",
"AMBI 1154", "3614") to a current catalog code. The cascade is an ordered
tuple of named rules evaluated top to bottom, first match wins; more specific
literal rules sit above the generic numeric ones. `None` means "no usable
mapping" and is an ordinary outcome.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from servicebook.maintenance.categories import MaintenanceCategory

Hint = MaintenanceCategory | None

_LEADING_QUANTITY = re.compile(r"^(\d+([.,]\d+)?)\s*(L|LTS|LTS\.)?\s+", re.IGNORECASE)
# A lone 1-9 at the end is a litre count ("F50 4"), never part of a code.
_TRAILING_QUANTITY = re.compile(r"\s+([1-9]([.,]\d+)?)\s*(L|LTS|LTS\.)?$", re.IGNORECASE)
_NON_DIGITS = re.compile(r"\D")

_SHORTHAND_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"Q\s+(\d+)"), r"Q\1"),
    (re.compile(r"GULF\s*ULTRA"), "GULF"),
    (re.compile(r"HX7X4LTS"), "HX7"),
    (re.compile(r"\bHX\s+(\d)\b"), r"HX\1"),
    (re.compile(r"\bF\s+(10|30|50)\b"), r"F\1"),
)


@dataclass(frozen=True)
class NormalizerMatch:
    code: str
    rule: str


@dataclass(frozen=True)
class TokenEntry:
    """Any of `tokens` present in the cleaned text maps to `code`."""

    tokens: tuple[str, ...]
    code: str
    _pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # "F10" must not fire inside "F10230"
        parts = [
            re.escape(t) + (r"(?!\d)" if t[-1].isdigit() else "") for t in self.tokens
        ]
        object.__setattr__(self, "_pattern", re.compile("|".join(parts)))

    def matches(self, text: str) -> bool:
        return self._pattern.search(text) is not None


def _first_entry(entries: Sequence[TokenEntry], text: str) -> str | None:
    for entry in entries:
        if entry.matches(text):
            return entry.code
    return None


@dataclass(frozen=True)
class VariantFamily:
    """Specialty oil line whose SKU depends on a grade token."""

    markers: tuple[str, ...]
    variants: tuple[TokenEntry, ...]
    default: str


ALIASES: dict[str, str] = {
    "S2": "S2",
    "S2000": "S2",
}

BULK_MARKERS: tuple[str, ...] = ("SUELTO", "SUEL", "GRANEL")

BULK_OILS: tuple[TokenEntry, ...] = (
    TokenEntry(("F30", "F30TO"), "ELAION-F30-SUELTO"),
    TokenEntry(("F50",), "ELAION-F50-SUELTO"),
    TokenEntry(("F10",), "ELAION-F10-SUELTO"),
    TokenEntry(("CASTROL", "CAST"), "CASTROL-MAGNATEC-SUELTO"),
    TokenEntry(("Q7000", "Q7"), "TOTAL-Q7000-SUELTO"),
    TokenEntry(("Q5000", "Q5"), "TOTAL-Q5000-SUELTO"),
    TokenEntry(("ELF",), "ELF-SEMI-SUELTO"),
    TokenEntry(("HX7",), "SHELL-HX7-SUELTO"),
    TokenEntry(("GULF",), "GULF-SINT-SUELTO"),
    TokenEntry(("S2000", "S2"), "S2"),
    TokenEntry(("25W60", "25/60"), "SUEL-25W60"),
    TokenEntry(("1040", "10/40"), "ELAION-F30-SUELTO"),
)

BOTTLED_OILS: tuple[TokenEntry, ...] = (
    TokenEntry(("F50",), "ELAION-F50-1L"),
    TokenEntry(("Q7000", "TOTAL 7000", "Q7"), "TOTAL-Q7000-1L"),
    TokenEntry(("Q5000", "TOTAL 5000", "Q5"), "TOTAL-Q5000-1L"),
    TokenEntry(("Q9000", "TOTAL 9000", "Q9"), "TOTAL-Q9000-1L"),
    TokenEntry(("CASTROL", "CAST"), "CASTROL-MAGNATEC-1L"),
    TokenEntry(("F30",), "ELAION-F30-1L"),
    TokenEntry(("F10",), "ELAION-F10-1L"),
    TokenEntry(("GULF 0/20", "GULF 0-20", "GULF0W20", "GULF"), "GULF-0W20"),
    TokenEntry(("SELENIA", "SELE"), "SHELL-HX7-1L"),
    TokenEntry(("EVO",), "ELAION-AURO-1L"),
)

ADDITIVES: tuple[TokenEntry, ...] = (
    TokenEntry(("STP",), "ADITIVO-STP"),
    TokenEntry(("WYNNS", "WYNN'S"), "ADITIVO-WYNNS"),
    TokenEntry(("REFRIGERANTE", "REFRIG", "ANTICONG"), "REFRIGERANTE-1L"),
    TokenEntry(("DOT4", "DOT 4"), "LIQ-FRENOS-DOT4"),
    TokenEntry(("DOT3", "DOT 3"), "LIQ-FRENOS-DOT3"),
    TokenEntry(("LIQ FRENO", "LIQUIDO FRENO", "LIQUIDO DE FRENO"), "LIQ-FRENOS-DOT4"),
)

HEAVY_DUTY_OILS: tuple[VariantFamily, ...] = (
    VariantFamily(
        ("EXTRAVIDA", "EXTRA VIDA"),
        (
            TokenEntry(("10W40", "1040", "10/40"), "YPF-EXTRAVIDA-10W40"),
            TokenEntry(("15W40", "1540", "15/40"), "YPF-EXTRAVIDA-15W40"),
        ),
        "YPF-EXTRAVIDA-15W40",
    ),
    VariantFamily(
        ("RIMULA",),
        (
            TokenEntry(("R5",), "SHELL-RIMULA-R5"),
            TokenEntry(("R4",), "SHELL-RIMULA-R4"),
        ),
        "SHELL-RIMULA-R4",
    ),
    VariantFamily(
        ("URANIA",),
        (
            TokenEntry(("5000",), "PETRONAS-URANIA-5000"),
            TokenEntry(("3000",), "PETRONAS-URANIA-3000"),
        ),
        "PETRONAS-URANIA-3000",
    ),
)

# (legacy prefix, required hint or None, current prefix)
LEGACY_FILTER_PREFIXES: tuple[tuple[str, Hint, str], ...] = (
    ("PH", None, "MAP-"),
    ("CA", None, "AMPI-"),
    ("CF", None, "HM-"),
    ("F", MaintenanceCategory.OIL_FILTER, "MAP-"),
    ("F", MaintenanceCategory.AIR_FILTER, "AMPI-"),
    ("F", MaintenanceCategory.CABIN_FILTER, "HM-"),
)

FILTER_FAMILY_BY_HINT: dict[MaintenanceCategory, str] = {
    MaintenanceCategory.OIL_FILTER: "MAP-",
    MaintenanceCategory.AIR_FILTER: "AMPI-",
    MaintenanceCategory.CABIN_FILTER: "HM-",
}

FUEL_FILTER_LITERALS: dict[str, str] = {
    "10230": "G10230",
    "7729": "G7729",
}

TUBULAR_AIR_FILTERS = frozenset({"163", "189"})

_CANONICAL_CODE = re.compile(r"^(?:(?:AMPI|AMP|MAP|HM)-\d+|G\d+)$")
_SPACED_FUEL_CODE = re.compile(r"^G\s*-?(\d+)$")
_FUEL_LEGACY_CODE = re.compile(r"^(?:F|GS)\s*-?(\d+)$")


def clean_descriptor(description: str) -> str:
    """Upper-case, drop inline litre counts and fix brand shorthand spacing."""
    clean = description.strip().upper()
    clean = _LEADING_QUANTITY.sub("", clean)
    clean = _TRAILING_QUANTITY.sub("", clean)
    for pattern, replacement in _SHORTHAND_REWRITES:
        clean = pattern.sub(replacement, clean, count=1)
    return clean.strip()


def _digits(text: str) -> str:
    return _NON_DIGITS.sub("", text)


def _alias(clean: str, hint: Hint) -> str | None:
    return ALIASES.get(clean)


def _bulk_oil(clean: str, hint: Hint) -> str | None:
    if not any(marker in clean for marker in BULK_MARKERS):
        return None
    return _first_entry(BULK_OILS, clean)


def _bottled_oil(clean: str, hint: Hint) -> str | None:
    return _first_entry(BOTTLED_OILS, clean)


def _additive(clean: str, hint: Hint) -> str | None:
    return _first_entry(ADDITIVES, clean)


def _heavy_duty_oil(clean: str, hint: Hint) -> str | None:
    for family in HEAVY_DUTY_OILS:
        if any(marker in clean for marker in family.markers):
            return _first_entry(family.variants, clean) or family.default
    return None


def _numeric_filter(clean: str, hint: Hint) -> str | None:
    for prefix, required_hint, target in LEGACY_FILTER_PREFIXES:
        if required_hint is not None and hint is not required_hint:
            continue
        match = re.fullmatch(rf"{prefix}\s*-?(\d+)", clean)
        if match:
            return f"{target}{match.group(1)}"

    compact = clean.replace(" ", "")
    if compact.isdigit() and hint in FILTER_FAMILY_BY_HINT:
        return f"{FILTER_FAMILY_BY_HINT[hint]}{compact}"
    return None


def _fuel_filter(clean: str, hint: Hint) -> str | None:
    for literal, code in FUEL_FILTER_LITERALS.items():
        if literal in clean:
            return code

    match = _SPACED_FUEL_CODE.fullmatch(clean)
    if match:
        return f"G{match.group(1)}"

    if hint is MaintenanceCategory.FUEL_FILTER:
        match = _FUEL_LEGACY_CODE.fullmatch(clean)
        if match:
            return f"G{match.group(1)}"
    return None


def _catalog_family(clean: str, hint: Hint) -> str | None:
    if _CANONICAL_CODE.fullmatch(clean):
        return clean

    num = _digits(clean)
    if not num:
        return None

    if (
        "AMPI" in clean
        or "AMBI" in clean
        or (clean.startswith("AMP") and "AMP-" not in clean)
    ):
        if num in TUBULAR_AIR_FILTERS:
            return f"AMP-{num}"
        return f"AMPI-{num}"
    if "MAP" in clean:
        return f"MAP-{num}"
    if "HM" in clean:
        return f"HM-{num}"
    if clean.startswith("ECO"):
        if hint is MaintenanceCategory.FUEL_FILTER or "GS" in clean:
            return f"G{num}"
        if hint in FILTER_FAMILY_BY_HINT:
            return f"{FILTER_FAMILY_BY_HINT[hint]}{num}"
        return f"MAP-{num}"
    return None


@dataclass(frozen=True)
class CascadeRule:
    name: str
    apply: Callable[[str, Hint], str | None]


CASCADE: tuple[CascadeRule, ...] = (
    CascadeRule("alias", _alias),
    CascadeRule("bulk_oil", _bulk_oil),
    CascadeRule("bottled_oil", _bottled_oil),
    CascadeRule("additive", _additive),
    CascadeRule("heavy_duty_oil", _heavy_duty_oil),
    CascadeRule("numeric_filter", _numeric_filter),
    CascadeRule("fuel_filter", _fuel_filter),
    CascadeRule("catalog_family", _catalog_family),
)


def explain(
    description: str | None,
    category_hint: Hint = None,
    rules: Sequence[CascadeRule] = CASCADE,
) -> NormalizerMatch | None:
    """Like `normalize`, but also reports which rule produced the code."""
    if not description:
        return None

    clean = clean_descriptor(description)
    if not clean:
        return None

    for rule in rules:
        code = rule.apply(clean, category_hint)
        if code:
            return NormalizerMatch(code=code, rule=rule.name)
    return None


def normalize(
    description: str | None,
    category_hint: Hint = None,
    rules: Sequence[CascadeRule] = CASCADE,
) -> str | None:
    match = explain(description, category_hint, rules)
    return match.code if match else None
