"""Location and parameter defaults for the fleet TCO engine.

State-level tables (electricity rates, diesel prices, cold-weather states)
are immutable data loaded from a JSON resource and injected into
LocationDefaults at construction, so tests and callers can substitute their
own tables. The built-in assumption bundle is assembled from the registry.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from bus_tco.data.registry import get_entry
from bus_tco.models.assumptions import (
    BusPrices,
    DataPoint,
    EvidenceClassification,
    ExternalCosts,
    FuelPair,
    IncentiveAmounts,
    InfrastructureCosts,
    InsuranceAssumptions,
    LifecycleAssumptions,
    MobileChargingCosts,
    PerBusType,
    RevenueStreams,
    TCOAssumptions,
    merge_assumptions,
)
from bus_tco.models.inputs import AnalysisParameters, TCOInput
from bus_tco.models.results import FleetScaleAdjustment, FleetTier

logger = logging.getLogger(__name__)


def _get_resource_path(relative_path: str) -> Path:
    """Get absolute path to a resource shipped inside the package."""
    return Path(__file__).resolve().parent.parent / relative_path


_DEFAULT_TABLES_PATH = _get_resource_path("resources/location_tables.json")

DEFAULT_PARAMETERS: Mapping[str, float] = MappingProxyType(AnalysisParameters().to_dict())

# Fleet-size tier boundaries, in buses
SMALL_FLEET_MAX = 40
LARGE_FLEET_MIN = 100


@dataclass(frozen=True)
class LocationTables:
    """Immutable state-level reference data.

    Attributes:
        electricity_rates: State code -> commercial electricity rate ($/kWh).
        diesel_prices: State code -> retail diesel price ($/gal).
        cold_weather_states: States that receive the cold-weather derating.
        ppa_states: States where a mobile charging operator buys power under a PPA
            rather than at the utility rate.
        default_electricity_rate: Rate for states missing from the table.
        default_diesel_price: Price for states missing from the table.
        source: Provenance attached to looked-up values.
        as_of: Date the tables were current.
    """

    electricity_rates: Mapping[str, float]
    diesel_prices: Mapping[str, float]
    cold_weather_states: FrozenSet[str]
    default_electricity_rate: float = 0.12
    default_diesel_price: float = 3.50
    source: str = ""
    as_of: str = ""
    ppa_states: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "electricity_rates", MappingProxyType(dict(self.electricity_rates)))
        object.__setattr__(self, "diesel_prices", MappingProxyType(dict(self.diesel_prices)))
        object.__setattr__(self, "cold_weather_states", frozenset(self.cold_weather_states))
        object.__setattr__(self, "ppa_states", frozenset(self.ppa_states))

    @classmethod
    def from_dict(cls, data: dict) -> "LocationTables":
        return cls(
            electricity_rates={k.upper(): float(v) for k, v in data.get("electricity_rate_kwh", {}).items()},
            diesel_prices={k.upper(): float(v) for k, v in data.get("diesel_price_per_gallon", {}).items()},
            cold_weather_states=frozenset(s.upper() for s in data.get("cold_weather_states", [])),
            default_electricity_rate=float(data.get("default_electricity_rate_kwh", 0.12)),
            default_diesel_price=float(data.get("default_diesel_price_per_gallon", 3.50)),
            source=data.get("source", ""),
            as_of=data.get("as_of", ""),
            ppa_states=frozenset(s.upper() for s in data.get("ppa_states", [])),
        )

    @classmethod
    def from_json(cls, filepath: Optional[str] = None) -> "LocationTables":
        """Load tables from a JSON file (defaults to the bundled resource).

        Raises:
            FileNotFoundError: If the file does not exist.
            json.JSONDecodeError: If the file is not valid JSON.
        """
        path = Path(filepath) if filepath else _DEFAULT_TABLES_PATH
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        logger.debug("Loaded location tables from %s", path)
        return cls.from_dict(data)


@lru_cache(maxsize=1)
def _bundled_tables() -> LocationTables:
    return LocationTables.from_json()


class LocationDefaults:
    """Resolves location-specific assumption defaults from injected tables.

    Args:
        tables: Reference tables. Defaults to the bundled US state tables.
    """

    def __init__(self, tables: Optional[LocationTables] = None):
        self.tables = tables or _bundled_tables()

    def electricity_rate(self, state: str) -> float:
        return self.tables.electricity_rates.get(state.upper(), self.tables.default_electricity_rate)

    def diesel_price(self, state: str) -> float:
        return self.tables.diesel_prices.get(state.upper(), self.tables.default_diesel_price)

    def is_cold_weather(self, state: str) -> bool:
        return state.upper() in self.tables.cold_weather_states

    def is_ppa_state(self, state: str) -> bool:
        return state.upper() in self.tables.ppa_states

    def weather_derating(self, state: str) -> DataPoint:
        """Cold-climate states get the cold-weather penalty, others the mild buffer."""
        entry_id = "cold_weather_range_reduction" if self.is_cold_weather(state) else "mild_weather_adjustment"
        return get_entry(entry_id).to_datapoint()

    def location_patch(self, state: str) -> Dict[str, Any]:
        """Return location-sensitive overrides for a state.

        Args:
            state: Two-letter state code.

        Returns:
            Override mapping with electricity rate, diesel price and weather
            derating factor.
        """
        state = state.upper()
        source = f"{self.tables.source} ({state})" if self.tables.source else state
        return {
            "electricity_rate_kwh": DataPoint(
                self.electricity_rate(state), EvidenceClassification.VERIFIED, source,
                as_of=self.tables.as_of,
            ),
            "diesel_price_per_gallon": DataPoint(
                self.diesel_price(state), EvidenceClassification.VERIFIED, source,
                as_of=self.tables.as_of,
            ),
            "weather_derating_factor": self.weather_derating(state),
        }


def _dp(entry_id: str) -> DataPoint:
    return get_entry(entry_id).to_datapoint()


def default_assumptions() -> TCOAssumptions:
    """Build the built-in assumption bundle from the registry."""
    return TCOAssumptions(
        bus_prices=BusPrices(
            type_a=FuelPair(_dp("bus_price_type_a_diesel"), _dp("bus_price_type_a_electric")),
            type_c=FuelPair(_dp("bus_price_type_c_diesel"), _dp("bus_price_type_c_electric")),
            type_d=FuelPair(_dp("bus_price_type_d_diesel"), _dp("bus_price_type_d_electric")),
        ),
        diesel_price_per_gallon=_dp("diesel_price_per_gallon"),
        electricity_rate_kwh=_dp("electricity_rate_kwh"),
        demand_charge_kw=_dp("demand_charge_kw"),
        diesel_mpg=PerBusType(_dp("diesel_mpg_type_a"), _dp("diesel_mpg_type_c"), _dp("diesel_mpg_type_d")),
        ev_kwh_per_mile=PerBusType(
            _dp("ev_kwh_per_mile_type_a"), _dp("ev_kwh_per_mile_type_c"), _dp("ev_kwh_per_mile_type_d")
        ),
        maintenance_cost_per_mile=FuelPair(
            _dp("maintenance_diesel_per_mile"), _dp("maintenance_electric_per_mile")
        ),
        infrastructure=InfrastructureCosts(
            level2_charger_cost=_dp("charger_level2_cost"),
            dcfc_charger_cost=_dp("charger_dcfc_cost"),
            installation_cost_per_charger=_dp("charger_installation_cost"),
            mobile_site_cost=_dp("mobile_site_cost"),
        ),
        mobile_charging=MobileChargingCosts(
            ppa_power_rate=_dp("mobile_ppa_power_rate"),
            utility_power_rate=_dp("mobile_utility_power_rate"),
            truck_energy=_dp("mobile_truck_energy"),
            labor=_dp("mobile_labor"),
            depreciation=_dp("mobile_depreciation"),
            maintenance=_dp("mobile_maintenance"),
        ),
        incentives=IncentiveAmounts(_dp("federal_incentive_per_bus"), _dp("state_incentive_per_bus")),
        revenue_streams=RevenueStreams(
            lcfs_per_bus=_dp("lcfs_credit_per_bus"),
            federal_carbon_credit_per_bus=_dp("federal_carbon_credit_per_bus"),
            demand_response_per_bus=_dp("v2g_demand_response_per_bus"),
            frequency_regulation_per_bus=_dp("v2g_frequency_regulation_per_bus"),
            vpp_per_bus=_dp("vpp_per_bus"),
            revenue_capture_rate=_dp("revenue_capture_rate"),
        ),
        lifecycle=LifecycleAssumptions(
            residual_value_fraction=_dp("residual_value_fraction"),
            battery_replacement_year=_dp("battery_replacement_year"),
            battery_replacement_cost=_dp("battery_replacement_cost"),
        ),
        insurance=InsuranceAssumptions(_dp("insurance_base_rate"), _dp("ev_insurance_premium")),
        weather_derating_factor=_dp("mild_weather_adjustment"),
        external_costs=ExternalCosts(
            health_children=_dp("ext_health_children"),
            health_community=_dp("ext_health_community"),
            health_drivers=_dp("ext_health_drivers"),
            climate_co2=_dp("ext_climate_co2"),
            climate_methane=_dp("ext_climate_methane"),
            climate_local_air=_dp("ext_climate_local_air"),
            regulatory_compliance=_dp("ext_regulatory_compliance"),
            regulatory_future_penalty=_dp("ext_regulatory_future_penalty"),
            regulatory_carbon_tax_risk=_dp("ext_regulatory_carbon_tax"),
            risk_fuel_volatility=_dp("ext_risk_fuel_volatility"),
            risk_supply_chain=_dp("ext_risk_supply_chain"),
            risk_reputational=_dp("ext_risk_reputational"),
        ),
    )


def profile_overrides(tco_input: TCOInput) -> Dict[str, Any]:
    """Translate optional fleet/location profile fields into assumption overrides."""
    fleet = tco_input.fleet
    location = tco_input.location
    overrides: Dict[str, Any] = {}
    if fleet.diesel_price_per_gallon is not None:
        overrides["diesel_price_per_gallon"] = fleet.diesel_price_per_gallon
    if fleet.avg_mpg is not None:
        overrides["diesel_mpg"] = {"type_a": fleet.avg_mpg, "type_c": fleet.avg_mpg, "type_d": fleet.avg_mpg}
    if fleet.annual_maintenance_cost_per_bus is not None and fleet.annual_miles_per_bus > 0:
        overrides["maintenance_cost_per_mile"] = {
            "diesel": fleet.annual_maintenance_cost_per_bus / fleet.annual_miles_per_bus
        }
    if location.electricity_rate_kwh is not None:
        overrides["electricity_rate_kwh"] = location.electricity_rate_kwh
    if location.demand_charge_kw is not None:
        overrides["demand_charge_kw"] = location.demand_charge_kw
    return overrides


def resolve_assumptions(tco_input: TCOInput, defaults: Optional[LocationDefaults] = None) -> TCOAssumptions:
    """Build the merged assumptions for one calculation.

    Precedence, lowest first: registry defaults, location defaults, fleet and
    location profile overrides, then the caller's explicit overrides.

    Raises:
        ValidationError: If the explicit overrides name unknown fields.
    """
    defaults = defaults or LocationDefaults()
    assumptions = default_assumptions()
    assumptions = merge_assumptions(assumptions, defaults.location_patch(tco_input.location.state_code))
    assumptions = merge_assumptions(assumptions, profile_overrides(tco_input))
    assumptions = merge_assumptions(assumptions, tco_input.overrides)
    logger.debug(
        "Resolved assumptions for %s (%d explicit override groups)",
        tco_input.location.state_code, len(tco_input.overrides),
    )
    return assumptions


def get_fleet_scale_adjustment(total_buses: int) -> FleetScaleAdjustment:
    """Fleet-size tier with cost and revenue multipliers.

    The same adjustment is applied to every scenario of a comparison.
    """
    if total_buses < SMALL_FLEET_MAX:
        return FleetScaleAdjustment(FleetTier.SMALL, 1.15, 0.8, False)
    if total_buses >= LARGE_FLEET_MIN:
        return FleetScaleAdjustment(FleetTier.LARGE, 0.92, 1.5, True)
    return FleetScaleAdjustment(FleetTier.MEDIUM, 1.0, 1.0, True)
