"""
Financial Projection Engine.

Retrofit cost:
  (PTHP unit cost + installation) × PTAC units × (1 + contingency)

Financing: fixed-rate annual amortization.
  payment = P·r / (1 − (1+r)^−n),  or P / n when r = 0

Timeline, one entry per calendar year starting at the retrofit year
(install year, index 0) for term + trailing years:
  - the loan originates in the install year; payments run years 1..n
  - energy savings start the year after install
  - NOI without upgrade = base NOI − baseline LL97 fee
  - NOI with upgrade    = base NOI − LL97 fee with retrofit
                          + energy savings − debt service
  - property value      = NOI / cap rate

Base NOI is ``noi.base_noi`` when set (override, caller-supplied, or looked
up by ``services/noi.py``), else building value × cap rate.
"""

from __future__ import annotations

import logging
from typing import Optional

from ll97_retrofit.engine.errors import ComputationError
from ll97_retrofit.engine.ll97 import fees_for_year
from ll97_retrofit.models.schemas import (
    ComplianceResult,
    EnergyConstants,
    FinancialProjection,
    LoanConfig,
    LoanYear,
    NOIConfig,
    ProjectionTimeline,
    YearValue,
)

logger = logging.getLogger(__name__)

# Largest residual balance (as a fraction of principal) accepted after the
# final payment before amortization is treated as non-converging.
AMORTIZATION_EPSILON = 1e-6


def estimate_retrofit_cost(ptac_units: int, constants: Optional[EnergyConstants] = None) -> float:
    constants = constants or EnergyConstants()
    per_unit = constants.unit_cost + constants.installation_cost
    cost = round(per_unit * ptac_units * (1 + constants.contingency), 2)
    if cost < 0:
        raise ComputationError(f"Negative retrofit cost {cost}", field="retrofit_cost")
    return cost


def annual_payment(principal: float, annual_rate: float, term_years: int) -> float:
    if principal <= 0:
        return 0.0
    if annual_rate == 0:
        return principal / term_years
    return principal * annual_rate / (1 - (1 + annual_rate) ** -term_years)


def amortize(
    principal: float,
    annual_rate: float,
    term_years: int,
    start_year: int,
) -> list[LoanYear]:
    """Annual schedule for years start_year .. start_year + term_years − 1."""
    if term_years < 1:
        raise ComputationError("Loan term must be at least one year", field="term_years")
    if principal < 0:
        raise ComputationError(f"Negative loan principal {principal}", field="retrofit_cost")

    payment = annual_payment(principal, annual_rate, term_years)
    balance = principal
    schedule: list[LoanYear] = []
    for i in range(term_years):
        interest = balance * annual_rate
        principal_paid = payment - interest
        closing = balance - principal_paid
        if i == term_years - 1:
            if abs(closing) > AMORTIZATION_EPSILON * max(principal, 1.0):
                raise ComputationError(
                    f"Amortization did not converge: residual balance {closing:.6f}",
                    field="loan",
                )
            principal_paid = balance
            payment = principal_paid + interest
            closing = 0.0
        schedule.append(LoanYear(
            year=start_year + i,
            opening_balance=balance,
            interest=interest,
            principal=principal_paid,
            payment=payment,
            closing_balance=closing,
        ))
        balance = closing
    return schedule


def resolve_base_noi(noi: NOIConfig) -> tuple[float, bool]:
    """Base NOI and whether it was estimated from building value × cap rate."""
    if noi.base_noi is not None:
        return noi.base_noi, False
    return noi.building_value * noi.cap_rate, True


def project(
    retrofit_cost: float,
    annual_savings: float,
    loan: Optional[LoanConfig] = None,
    noi: Optional[NOIConfig] = None,
    timeline: Optional[ProjectionTimeline] = None,
    compliance: Optional[list[ComplianceResult]] = None,
) -> FinancialProjection:
    loan = loan or LoanConfig()
    noi = noi or NOIConfig()
    timeline = timeline or ProjectionTimeline()
    compliance = compliance or []

    install_year = timeline.retrofit_year
    horizon = loan.term_years + timeline.trailing_years
    years = [install_year + i for i in range(horizon)]

    schedule = amortize(retrofit_cost, loan.annual_interest_rate, loan.term_years, install_year + 1)
    by_year = {row.year: row for row in schedule}

    base_noi, estimated = resolve_base_noi(noi)
    if estimated:
        logger.info(
            "No NOI supplied; estimating %.2f from building value %.2f at cap rate %.4f",
            base_noi, noi.building_value, noi.cap_rate,
        )

    loan_balance: list[YearValue] = []
    savings_series: list[YearValue] = []
    cumulative: list[YearValue] = []
    cumulative_total: list[YearValue] = []
    noi_without: list[YearValue] = []
    noi_with: list[YearValue] = []
    value_without: list[YearValue] = []
    value_with: list[YearValue] = []

    running = 0.0
    running_total = 0.0
    payback_year: Optional[int] = None
    for i, year in enumerate(years):
        row = by_year.get(year)
        if i == 0:
            balance = retrofit_cost
        else:
            balance = row.closing_balance if row else 0.0

        savings = annual_savings if i > 0 else 0.0
        baseline_fee, adjusted_fee = fees_for_year(compliance, year)
        fee_avoidance = baseline_fee - adjusted_fee if i > 0 else 0.0

        running += savings
        running_total += savings + fee_avoidance
        if payback_year is None and i > 0 and retrofit_cost > 0 and running_total >= retrofit_cost:
            payback_year = year

        grown = base_noi * (1 + noi.growth_rate) ** i
        debt_service = row.payment if row else 0.0
        without = grown - baseline_fee
        with_upgrade = grown - (adjusted_fee if i > 0 else baseline_fee) + savings - debt_service

        loan_balance.append(YearValue(year=year, value=balance))
        savings_series.append(YearValue(year=year, value=savings))
        cumulative.append(YearValue(year=year, value=running))
        cumulative_total.append(YearValue(year=year, value=running_total))
        noi_without.append(YearValue(year=year, value=without))
        noi_with.append(YearValue(year=year, value=with_upgrade))
        value_without.append(YearValue(year=year, value=without / noi.cap_rate))
        value_with.append(YearValue(year=year, value=with_upgrade / noi.cap_rate))

    return FinancialProjection(
        retrofit_cost=retrofit_cost,
        annual_energy_savings=annual_savings,
        annual_payment=schedule[0].payment if schedule else 0.0,
        total_interest_paid=sum(row.interest for row in schedule),
        base_noi=base_noi,
        noi_estimated=estimated,
        noi_source="building_value" if estimated else (noi.base_noi_source or "explicit"),
        amortization=schedule,
        loan_balance=loan_balance,
        annual_savings=savings_series,
        cumulative_savings=cumulative,
        cumulative_total_savings=cumulative_total,
        noi_without_upgrade=noi_without,
        noi_with_upgrade=noi_with,
        property_value_without_upgrade=value_without,
        property_value_with_upgrade=value_with,
        simple_payback_year=payback_year,
    )
