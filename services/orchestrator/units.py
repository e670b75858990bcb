"""SI unit, formula and significant-figure heuristics for worked solutions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

SI_UNITS: Dict[str, Tuple[str, ...]] = {
    "length": ("m", "km", "cm", "mm", "nm"),
    "mass": ("kg", "g", "mg", "ton"),
    "time": ("s", "ms", "min", "h", "hour"),
    "velocity": ("m/s", "km/h", "km/hr"),
    "acceleration": ("m/s²", "m/s^2"),
    "force": ("N", "Newton", "kN"),
    "energy": ("J", "Joule", "kJ", "MJ", "eV"),
    "power": ("W", "Watt", "kW", "MW"),
    "pressure": ("Pa", "Pascal", "kPa", "atm", "bar"),
    "temperature": ("K", "°C", "C"),
    "charge": ("C", "Coulomb", "mC"),
    "current": ("A", "Ampere", "mA"),
    "voltage": ("V", "Volt", "kV", "mV"),
    "resistance": ("Ω", "Ohm", "kΩ"),
    "frequency": ("Hz", "Hertz", "kHz", "MHz"),
    "angle": ("rad", "radian", "degree", "°"),
}
KNOWN_UNITS = frozenset(unit for units in SI_UNITS.values() for unit in units)

# Physics terms in Hindi that must never appear inside a formula.
HINDI_FORMULA_TERMS = ("द्रव्यमान", "त्वरण", "बल", "ऊर्जा", "शक्ति", "वेग", "दूरी", "समय", "विद्युत", "आवेश")

UNIT_RE = re.compile(r"\b(\d+\.?\d*)\s*([a-zA-Z°Ω]+(?:/[a-zA-Z°]+)?(?:\^?\d)?)", re.ASCII)
NUMBER_RE = re.compile(r"\b(\d+\.?\d*)\b", re.ASCII)
FORMULA_RE = re.compile(r"([a-zA-Z]\s*=\s*[^.!?\n]+)")


@dataclass(frozen=True)
class UnitCheck:
    consistent: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class FormulaLanguageCheck:
    all_english: bool
    non_english_formulas: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SigFigCheck:
    consistent: bool
    message: str


def extract_units(text: str) -> List[str]:
    """Units written directly after a number, first occurrence order, no repeats."""
    units: List[str] = []
    for match in UNIT_RE.finditer(text):
        unit = match.group(2)
        if unit not in units:
            units.append(unit)
    return units


def is_valid_si_unit(unit: str) -> bool:
    normalized = unit.replace("²", "^2").replace("³", "^3").replace("·", "").strip()
    if normalized in KNOWN_UNITS or unit in KNOWN_UNITS:
        return True
    # Compound units are accepted without dimensional checks.
    return "/" in normalized or "·" in unit


def extract_formulas_with_units(text: str) -> List[str]:
    return [match.group(0).strip() for match in FORMULA_RE.finditer(text)]


def verify_unit_consistency(calculation: str) -> UnitCheck:
    units = extract_units(calculation)
    errors = [f"Invalid or non-SI unit detected: {unit}" for unit in units if not is_valid_si_unit(unit)]
    if "km/h" in units and "m/s" in units:
        errors.append("Mixed velocity units (km/h and m/s) detected - ensure proper conversion")
    if "g" in units and "kg" in units:
        errors.append("Mixed mass units (g and kg) detected - ensure proper conversion")
    return UnitCheck(consistent=not errors, errors=errors)


def check_formulas_in_english(text: str) -> FormulaLanguageCheck:
    offending = [
        formula
        for formula in extract_formulas_with_units(text)
        if any(term in formula for term in HINDI_FORMULA_TERMS)
    ]
    return FormulaLanguageCheck(all_english=not offending, non_english_formulas=offending)


def _decimal_places(number: str) -> int:
    """Decimals as written, ignoring trailing zeros."""
    if "." not in number:
        return 0
    return len(number.split(".", 1)[1].rstrip("0"))


def verify_sig_figs(calculation: str) -> SigFigCheck:
    """The last number is the answer; it may carry at most one more decimal than any input."""
    numbers = [match.group(1) for match in NUMBER_RE.finditer(calculation)]
    if len(numbers) < 2:
        return SigFigCheck(consistent=True, message="Insufficient data for sig fig check")

    max_input_precision = max(_decimal_places(number) for number in numbers[:-1])
    final_precision = _decimal_places(numbers[-1])
    if final_precision > max_input_precision + 1:
        return SigFigCheck(
            consistent=False,
            message=(
                f"Final answer has {final_precision} decimal places, "
                f"but inputs have max {max_input_precision}"
            ),
        )
    return SigFigCheck(consistent=True, message="Significant figures appear consistent")
