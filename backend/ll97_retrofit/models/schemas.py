from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ll97_retrofit.engine import constants as C


# ──────────────────────────────────────────────────────────────────
# UPSTREAM DATA
# ──────────────────────────────────────────────────────────────────

class PlutoData(BaseModel):
    bbl: str
    address: Optional[str] = None
    borough: Optional[str] = None
    bldgclass: Optional[str] = None
    landuse: Optional[str] = None
    bldgarea: Optional[float] = None
    resarea: Optional[float] = None
    comarea: Optional[float] = None
    officearea: Optional[float] = None
    retailarea: Optional[float] = None
    unitsres: Optional[int] = None
    unitstotal: Optional[int] = None
    numfloors: Optional[float] = None
    yearbuilt: Optional[int] = None
    zipcode: Optional[str] = None
    cd: Optional[int] = None  # community district, e.g. 105 = Manhattan CD 5


class LL84Data(BaseModel):
    """Latest LL84 benchmarking disclosure for a property."""
    bbl: str
    report_year: Optional[int] = None
    property_name: Optional[str] = None
    largest_property_use_type: Optional[str] = None
    list_of_all_property_use: Optional[str] = None
    property_gfa: Optional[float] = None
    site_eui: Optional[float] = None
    site_energy_use_kbtu: Optional[float] = None
    total_ghg_emissions: Optional[float] = None
    total_location_based_ghg: Optional[float] = None


# ──────────────────────────────────────────────────────────────────
# BUILDING PROFILE
# ──────────────────────────────────────────────────────────────────

class OccupancyUse(BaseModel):
    model_config = ConfigDict(frozen=True)

    occupancy_type: str
    square_feet: float = Field(ge=0)


class UnitMix(BaseModel):
    model_config = ConfigDict(frozen=True)

    studio: int = Field(0, ge=0)
    one_bed: int = Field(0, ge=0)
    two_bed: int = Field(0, ge=0)
    three_plus: int = Field(0, ge=0)

    @property
    def dwelling_units(self) -> int:
        return self.studio + self.one_bed + self.two_bed + self.three_plus

    @property
    def ptac_units(self) -> int:
        # one PTAC per room: studio 1, 1BR 2, 2BR 3, 3BR+ 4
        return self.studio + 2 * self.one_bed + 3 * self.two_bed + 4 * self.three_plus

    @property
    def bedrooms(self) -> int:
        return self.one_bed + 2 * self.two_bed + 3 * self.three_plus


class BuildingProfile(BaseModel):
    """Immutable snapshot of everything the engines know about one building."""
    model_config = ConfigDict(frozen=True)

    bbl: Optional[str] = None
    address: Optional[str] = None
    building_class: str
    total_square_feet: float = Field(ge=0)
    occupancy: list[OccupancyUse] = Field(default_factory=list)
    total_emissions_tco2e: Optional[float] = Field(None, ge=0)
    # Required when assembled from LL84; optional for caller-supplied profiles
    # since no stage reads it.
    total_site_energy_kbtu: Optional[float] = Field(None, ge=0)
    year_built: Optional[int] = None
    num_floors: Optional[float] = None
    residential_units: Optional[int] = Field(None, ge=0)
    unit_mix_hint: Optional[UnitMix] = None

    @model_validator(mode="after")
    def _occupancy_fits_building(self) -> "BuildingProfile":
        classified = sum(o.square_feet for o in self.occupancy)
        if classified > self.total_square_feet + 1.0:
            raise ValueError(
                f"Occupancy areas ({classified:,.0f} sf) exceed total building area "
                f"({self.total_square_feet:,.0f} sf)"
            )
        return self

    @property
    def classified_square_feet(self) -> float:
        return sum(o.square_feet for o in self.occupancy)


# ──────────────────────────────────────────────────────────────────
# CONFIGURATION
# ──────────────────────────────────────────────────────────────────

class EnergyPrices(BaseModel):
    price_per_kwh: float = Field(C.PRICE_PER_KWH, ge=0)
    price_per_therm: float = Field(C.PRICE_PER_THERM, ge=0)


class EnergyConstants(BaseModel):
    heating_therms_per_unit: float = C.PTAC_HEATING_THERMS_PER_UNIT
    heating_mmbtu_per_unit: float = C.PTAC_HEATING_MMBTU_PER_UNIT
    cooling_kwh_per_unit: float = C.PTAC_COOLING_KWH_PER_UNIT
    cooling_mmbtu_per_unit: float = C.PTAC_COOLING_MMBTU_PER_UNIT
    heating_method: Literal["eflh", "cop"] = "eflh"
    pthp_cop: float = Field(C.PTHP_COP, gt=0)
    pthp_heating_capacity_kbtu: float = Field(C.PTHP_HEATING_CAPACITY_KBTU, gt=0)
    pthp_rated_cop: float = Field(C.PTHP_RATED_COP, gt=0)
    unit_cost: float = C.PTHP_UNIT_COST
    installation_cost: float = C.PTHP_INSTALLATION_COST
    contingency: float = C.RETROFIT_CONTINGENCY


class LL97Constants(BaseModel):
    fee_per_ton: float = Field(C.LL97_FEE_PER_TON, ge=0)
    gas_emissions_factor: float = Field(C.GAS_EMISSIONS_FACTOR, ge=0)


class LoanConfig(BaseModel):
    annual_interest_rate: float = Field(C.LOAN_INTEREST_RATE, ge=0)
    term_years: int = Field(C.LOAN_TERM_YEARS, ge=1)


# Where a base NOI came from. "building_value" means building value × cap rate.
NOISource = Literal[
    "cooperative_api", "condominium_api", "rgb_study", "override", "explicit", "building_value",
]


class NOIConfig(BaseModel):
    base_noi: Optional[float] = None
    base_noi_source: Optional[NOISource] = None
    building_value: float = Field(C.DEFAULT_BUILDING_VALUE, ge=0)
    cap_rate: float = Field(C.CAP_RATE, gt=0)
    growth_rate: float = C.NOI_GROWTH_RATE


class SourcedNOI(BaseModel):
    """A base NOI looked up for a specific building."""
    annual_noi: float = Field(gt=0)
    source: NOISource
    report_year: Optional[int] = None
    details: dict = Field(default_factory=dict)


class ProjectionTimeline(BaseModel):
    retrofit_year: int = C.RETROFIT_YEAR
    trailing_years: int = Field(C.TRAILING_YEARS, ge=1)


class CalculationOptions(BaseModel):
    """Every tunable input for one calculation, passed explicitly to each stage."""
    prices: EnergyPrices = Field(default_factory=EnergyPrices)
    energy: EnergyConstants = Field(default_factory=EnergyConstants)
    ll97: LL97Constants = Field(default_factory=LL97Constants)
    loan: LoanConfig = Field(default_factory=LoanConfig)
    noi: NOIConfig = Field(default_factory=NOIConfig)
    timeline: ProjectionTimeline = Field(default_factory=ProjectionTimeline)
    ptac_units_override: Optional[int] = Field(None, ge=0)


class CalculationOverrides(BaseModel):
    price_per_kwh: Optional[float] = Field(None, ge=0)
    price_per_therm: Optional[float] = Field(None, ge=0)
    annual_interest_rate: Optional[float] = Field(None, ge=0)
    loan_term_years: Optional[int] = Field(None, ge=1)
    base_noi: Optional[float] = None
    cap_rate: Optional[float] = Field(None, gt=0)
    ptac_units: Optional[int] = Field(None, ge=0)


# ──────────────────────────────────────────────────────────────────
# STAGE OUTPUTS
# ──────────────────────────────────────────────────────────────────

class OccupancyAllocation(BaseModel):
    occupancy_type: str
    square_feet: float
    weight: float
    ptac_units: int


class UnitBreakdown(BaseModel):
    building_class: str
    category: str
    dwelling_units: int = 0
    unit_mix: UnitMix = Field(default_factory=UnitMix)
    ptac_units: int = Field(ge=0)
    bedrooms: int = 0
    allocations: list[OccupancyAllocation] = Field(default_factory=list)
    confidence: Literal["high", "medium", "low"]
    source: Literal["pluto", "heuristic", "model", "override"]
    path: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class EnergyProfile(BaseModel):
    ptac_units: int
    heating_method: str
    eflh_hours: Optional[int] = None

    baseline_heating_therms: float
    baseline_heating_mmbtu: float
    baseline_cooling_kwh: float
    baseline_cooling_mmbtu: float
    baseline_total_mmbtu: float

    retrofit_heating_kwh: float
    retrofit_heating_mmbtu: float
    retrofit_cooling_kwh: float
    retrofit_cooling_mmbtu: float
    retrofit_total_kwh: float
    retrofit_total_mmbtu: float

    baseline_annual_cost: float
    retrofit_annual_cost: float
    annual_savings: float
    energy_reduction_pct: float
    retrofit_uneconomical: bool = False


class BECreditWindowResult(BaseModel):
    start_year: int
    end_year: int
    coefficient: float
    be_credit: float
    adjusted_emissions: float
    annual_fee: float


class ComplianceResult(BaseModel):
    period: str
    start_year: int
    end_year: int
    emissions_budget: float
    current_emissions: float
    retrofit_emissions_delta: float
    adjusted_emissions: float
    be_credit_eligible: bool
    be_credit: float
    be_credit_windows: list[BECreditWindowResult] = Field(default_factory=list)
    baseline_annual_fee: float
    annual_fee: float
    fee_avoidance: float
    compliant: bool


class ComplianceInsights(BaseModel):
    worst_case_fee: float
    total_be_credit_available: float
    compliance_status: dict[str, bool]


class LoanYear(BaseModel):
    year: int
    opening_balance: float
    interest: float
    principal: float
    payment: float
    closing_balance: float


class YearValue(BaseModel):
    year: int
    value: float


class FinancialProjection(BaseModel):
    retrofit_cost: float
    annual_energy_savings: float
    annual_payment: float
    total_interest_paid: float
    base_noi: float
    noi_estimated: bool
    noi_source: NOISource = "building_value"
    amortization: list[LoanYear]
    loan_balance: list[YearValue]
    annual_savings: list[YearValue]
    cumulative_savings: list[YearValue]
    cumulative_total_savings: list[YearValue]
    noi_without_upgrade: list[YearValue]
    noi_with_upgrade: list[YearValue]
    property_value_without_upgrade: list[YearValue]
    property_value_with_upgrade: list[YearValue]
    simple_payback_year: Optional[int] = None


class CalculationResult(BaseModel):
    id: Optional[str] = None
    bbl: Optional[str] = None
    profile: BuildingProfile
    options: CalculationOptions
    unit_breakdown: UnitBreakdown
    energy: EnergyProfile
    compliance: list[ComplianceResult]
    financial: FinancialProjection
    insights: ComplianceInsights
    constants_version: str
    cache_key: str
    calculated_at: datetime

    def ll97_fields(self) -> dict:
        """Flat LL97 slice: one budget / emissions / fee / credit field per period."""
        out: dict = {}
        for r in self.compliance:
            suffix = r.period.replace("-", "_")
            out[f"emissions_budget_{suffix}"] = r.emissions_budget
            out[f"adjusted_emissions_{suffix}"] = r.adjusted_emissions
            out[f"baseline_annual_fee_{suffix}"] = r.baseline_annual_fee
            out[f"annual_fee_{suffix}"] = r.annual_fee
            out[f"fee_avoidance_{suffix}"] = r.fee_avoidance
            out[f"be_credit_{suffix}"] = r.be_credit
            out[f"compliant_{suffix}"] = r.compliant
            for w in r.be_credit_windows:
                window = f"{w.start_year}_{w.end_year}"
                out[f"be_credit_{window}"] = w.be_credit
                out[f"adjusted_annual_fee_{window}"] = w.annual_fee
        out["current_emissions"] = self.compliance[0].current_emissions if self.compliance else None
        out["worst_case_fee"] = self.insights.worst_case_fee
        out["total_be_credit_available"] = self.insights.total_be_credit_available
        out["compliance_status"] = dict(self.insights.compliance_status)
        return out

    def to_flat_fields(self) -> dict:
        """The persisted flat field set consumed by downstream reports."""
        fin = self.financial
        out = {
            "id": self.id,
            "bbl": self.bbl,
            "building_class": self.profile.building_class,
            "total_square_feet": self.profile.total_square_feet,
            "ptac_units": self.unit_breakdown.ptac_units,
            "unit_breakdown_confidence": self.unit_breakdown.confidence,
            "ptac_heating_mmbtu": self.energy.baseline_heating_mmbtu,
            "ptac_cooling_kwh": self.energy.baseline_cooling_kwh,
            "pthp_heating_kwh": self.energy.retrofit_heating_kwh,
            "pthp_cooling_kwh": self.energy.retrofit_cooling_kwh,
            "annual_energy_savings": self.energy.annual_savings,
            "total_retrofit_cost": fin.retrofit_cost,
            "annual_loan_payment": fin.annual_payment,
            "total_interest_paid": fin.total_interest_paid,
            "simple_payback_year": fin.simple_payback_year,
            "base_noi": fin.base_noi,
            "noi_source": fin.noi_source,
            "loan_balance_by_year": [p.model_dump() for p in fin.loan_balance],
            "cumulative_savings_by_year": [p.model_dump() for p in fin.cumulative_savings],
            "noi_without_upgrade_by_year": [p.model_dump() for p in fin.noi_without_upgrade],
            "noi_with_upgrade_by_year": [p.model_dump() for p in fin.noi_with_upgrade],
            "constants_version": self.constants_version,
            "cache_key": self.cache_key,
        }
        out.update(self.ll97_fields())
        return out
