"""Input validation functions for the fleet TCO engine.

Each validator returns a tuple of (is_valid: bool, message: str).
Messages describe errors, or warnings prefixed with "Warning:" that never
block a calculation. ensure_valid() aggregates every failing check into one
ValidationError before any cost is computed.
"""

import math
from typing import List, Optional, Tuple

from bus_tco.data.registry import ASSUMPTION_PATHS, validate_registry_value
from bus_tco.models.errors import ValidationError
from bus_tco.models.inputs import ScenarioType, TCOInput

MAX_DAILY_MILES = 500
MAX_OPERATING_DAYS = 365
MAX_DIESEL_PRICE = 20.0
MPG_RANGE = (2.0, 20.0)
HORIZON_RANGE = (1, 30)
MAX_DISCOUNT_RATE = 0.20


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_bus_count(label: str, count) -> Tuple[bool, str]:
    """Validate a bus count for one size class.

    Args:
        label: Size class name for the message, e.g. "Type C".
        count: Number of buses.

    Returns:
        (is_valid, message) tuple.
    """
    if not _is_number(count):
        return False, f"{label} bus count must be a number, got {count!r}."
    if count < 0:
        return False, f"{label} bus count must be >= 0, got {count}."
    if count != int(count):
        return False, f"{label} bus count must be a whole number, got {count}."
    return True, ""


def validate_daily_miles(miles) -> Tuple[bool, str]:
    """Validate average daily miles per bus."""
    if not _is_number(miles) or not 0 <= miles <= MAX_DAILY_MILES:
        return False, f"Average daily miles must be between 0 and {MAX_DAILY_MILES}, got {miles}."
    if miles > 200:
        return True, f"Warning: {miles} daily miles exceeds typical electric bus range on one charge."
    return True, ""


def validate_operating_days(days) -> Tuple[bool, str]:
    """Validate operating days per year."""
    if not _is_number(days) or not 0 <= days <= MAX_OPERATING_DAYS:
        return False, f"Operating days per year must be between 0 and {MAX_OPERATING_DAYS}, got {days}."
    return True, ""


def validate_park_out(percentage) -> Tuple[bool, str]:
    """Validate the share of the fleet parked off-site overnight (0-100)."""
    if not _is_number(percentage) or not 0 <= percentage <= 100:
        return False, f"Park-out percentage must be between 0 and 100, got {percentage}."
    return True, ""


def validate_diesel_price(price: Optional[float]) -> Tuple[bool, str]:
    """Validate an optional diesel price override in $/gal."""
    if price is None:
        return True, ""
    if not _is_number(price) or not 0 <= price <= MAX_DIESEL_PRICE:
        return False, f"Diesel price must be between $0 and ${MAX_DIESEL_PRICE:.0f}/gal, got {price}."
    return True, ""


def validate_mpg(mpg: Optional[float]) -> Tuple[bool, str]:
    """Validate an optional fleet MPG override."""
    if mpg is None:
        return True, ""
    low, high = MPG_RANGE
    if not _is_number(mpg) or not low <= mpg <= high:
        return False, f"MPG must be between {low:.0f} and {high:.0f}, got {mpg}."
    return True, ""


def validate_state_code(state) -> Tuple[bool, str]:
    """Validate a two-letter state code."""
    if not isinstance(state, str) or len(state.strip()) != 2 or not state.strip().isalpha():
        return False, f"State must be a two-letter code, got {state!r}."
    return True, ""


def validate_horizon(years) -> Tuple[bool, str]:
    """Validate the planning horizon in whole years."""
    low, high = HORIZON_RANGE
    if not _is_number(years) or years != int(years) or not low <= years <= high:
        return False, f"Planning horizon must be a whole number of years between {low} and {high}, got {years}."
    return True, ""


def validate_discount_rate(rate) -> Tuple[bool, str]:
    """Validate discount rate.

    Args:
        rate: Discount rate as decimal (e.g., 0.05 for 5%).

    Returns:
        (is_valid, message) tuple.
    """
    if not _is_number(rate) or not 0 <= rate <= MAX_DISCOUNT_RATE:
        return False, f"Discount rate must be between 0% and {MAX_DISCOUNT_RATE:.0%}, got {rate}."
    return True, ""


def _numeric_leaves(overrides, prefix=""):
    for key, value in overrides.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _numeric_leaves(value, f"{path}.")
        elif _is_number(value):
            yield path, value


def validate_overrides(overrides) -> Tuple[bool, List[str]]:
    """Range-check plain numeric overrides against their registry entries.

    DataPoint overrides carry their own classification and source and are
    taken as given. Paths without a registry entry are not checked here.

    Returns:
        (is_valid, errors) tuple.
    """
    errors = []
    for path, value in _numeric_leaves(overrides or {}):
        entry_id = ASSUMPTION_PATHS.get(path)
        if entry_id is None:
            continue
        valid, entry_errors = validate_registry_value(entry_id, value)
        if not valid:
            errors.extend(f"Override {path}: {e}" for e in entry_errors)
    return not errors, errors


def validate_tco_input(tco_input: TCOInput) -> Tuple[bool, List[str]]:
    """Run all validations on a complete TCO input.

    Args:
        tco_input: Input to validate.

    Returns:
        (is_valid, messages) where messages includes all errors and warnings.
    """
    fleet = tco_input.fleet
    params = tco_input.parameters
    checks = [
        validate_bus_count("Type A", fleet.type_a_count),
        validate_bus_count("Type C", fleet.type_c_count),
        validate_bus_count("Type D", fleet.type_d_count),
        validate_daily_miles(fleet.avg_daily_miles),
        validate_operating_days(fleet.operating_days_per_year),
        validate_park_out(fleet.park_out_percentage),
        validate_diesel_price(fleet.diesel_price_per_gallon),
        validate_mpg(fleet.avg_mpg),
        validate_state_code(tco_input.location.state),
        validate_horizon(params.planning_horizon_years),
        validate_discount_rate(params.discount_rate),
    ]
    overrides_valid, override_errors = validate_overrides(tco_input.overrides)
    if not overrides_valid:
        checks.extend((False, e) for e in override_errors)
    if not isinstance(tco_input.scenario_type, ScenarioType):
        checks.append((False, f"Unknown scenario type {tco_input.scenario_type!r}."))

    messages = []
    is_valid = True
    for valid, msg in checks:
        if not valid:
            is_valid = False
        if msg:
            messages.append(msg)

    if is_valid and fleet.total_buses == 0:
        messages.append("Warning: Fleet has no buses. Per-mile costs will be undefined.")

    return is_valid, messages


def ensure_valid(tco_input: TCOInput) -> None:
    """Raise a ValidationError listing every violated constraint.

    Raises:
        ValidationError: If any check fails. Warnings alone never raise.
    """
    is_valid, messages = validate_tco_input(tco_input)
    if not is_valid:
        raise ValidationError([m for m in messages if not m.startswith("Warning:")])
