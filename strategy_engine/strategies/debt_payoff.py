"""
Debt payoff strategy.

Orders the liabilities found in the plan by the avalanche (highest rate
first) or snowball (smallest balance first) method, points the extra
monthly payment at the first target and keeps minimum payments on the rest.
"""

import logging
import math
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, Field

from ..models.events import EventType, StrategyMetadata
from ..models.strategy import (
    ApplicabilityResult,
    CashFlowImpact,
    ExecutionContext,
    GeneratedEvent,
    InputValidation,
    ModifiedEvent,
    NetWorthImpact,
    ParameterOption,
    ParameterSchema,
    ParameterSpec,
    PolicySummary,
    RiskFactor,
    StrategyCategory,
    StrategyDefinition,
    StrategyImpact,
    StrategyResult,
)
from .base import (
    LIABILITY_TYPES,
    build_event,
    generate_or_modify,
    has_existing_debt,
    is_number,
    recommendation,
    resolve_inputs,
    success_result,
    validate_parameters,
)

logger = logging.getLogger(__name__)

MIN_TOTAL_DEBT = 1000
HIGH_INTEREST_RATE = 0.20
MAX_PAYOFF_MONTHS = 600


class DebtInfo(BaseModel):
    """A liability as seen by the payoff planner."""

    name: str = Field(..., description="Liability name")
    balance: float = Field(..., ge=0, description="Outstanding balance")
    interest_rate: float = Field(..., ge=0, description="Annual interest rate (decimal)")
    minimum_payment: float = Field(default=0.0, ge=0, description="Required monthly payment")


def extract_debts(events) -> List[DebtInfo]:
    """Liabilities with a balance and an interest rate, in ledger order."""
    debts = []
    for event in events:
        if event.type not in LIABILITY_TYPES:
            continue
        if event.outstanding_balance <= 0 or event.annual_interest_rate <= 0:
            continue
        debts.append(
            DebtInfo(
                name=event.name or "Debt",
                balance=event.outstanding_balance,
                interest_rate=event.annual_interest_rate,
                minimum_payment=event.monthly_payment,
            )
        )
    return debts


def order_debts(debts: List[DebtInfo], method: str) -> List[DebtInfo]:
    if method == "avalanche":
        return sorted(debts, key=lambda debt: debt.interest_rate, reverse=True)
    return sorted(debts, key=lambda debt: debt.balance)


def simulate_payoff(debts: List[DebtInfo], extra_payment: float) -> Tuple[int, float]:
    """
    Pay the debts down month by month in the given order.

    Minimum payments go to every open debt; the extra payment, plus the
    minimums freed by debts already paid off, goes to the first open debt.

    Returns:
        (months until every debt is paid, total interest paid). Months is
        capped at MAX_PAYOFF_MONTHS when payments never catch up with interest.
    """
    balances = [debt.balance for debt in debts]
    budget = sum(debt.minimum_payment for debt in debts) + extra_payment
    total_interest = 0.0

    for month in range(1, MAX_PAYOFF_MONTHS + 1):
        for index, debt in enumerate(debts):
            interest = balances[index] * debt.interest_rate / 12
            balances[index] += interest
            total_interest += interest

        available = budget
        for index, debt in enumerate(debts):
            payment = min(balances[index], debt.minimum_payment, available)
            balances[index] -= payment
            available -= payment
        for index in range(len(debts)):
            payment = min(balances[index], available)
            balances[index] -= payment
            available -= payment

        if all(balance <= 0.005 for balance in balances):
            return month, total_interest

    return MAX_PAYOFF_MONTHS, total_interest


class DebtPayoffStrategy:
    """Avalanche or snowball debt elimination."""

    id = "debt-payoff-strategy"
    name = "Debt Payoff Accelerator"
    category = StrategyCategory.DEBT_PAYOFF

    def __init__(self):
        self.definition = StrategyDefinition(
            id=self.id,
            name=self.name,
            description="Systematically eliminate debt using avalanche or snowball methods",
            category=self.category,
            priority="HIGH",
            difficulty="INTERMEDIATE",
            estimated_timeframe_months=36,
            tags=["debt", "payoff", "interest-savings", "cash-flow"],
            parameters=self.get_parameters(),
        )

    def get_parameters(self) -> ParameterSchema:
        return {
            "method": ParameterSpec(
                type="selection",
                label="Payoff Method",
                description="Choose debt elimination strategy",
                default_value="avalanche",
                options=[
                    ParameterOption(value="avalanche", label="Avalanche (highest interest first)"),
                    ParameterOption(value="snowball", label="Snowball (smallest balance first)"),
                ],
                required=True,
            ),
            "extra_payment": ParameterSpec(
                type="number",
                label="Extra Monthly Payment",
                description="Additional amount to allocate to debt payoff",
                default_value=500,
                min=0,
                max=10000,
                step=50,
                required=True,
                validation=lambda value: (
                    "Extra payment must be greater than zero" if value <= 0 else None
                ),
            ),
            "include_emergency_fund": ParameterSpec(
                type="boolean",
                label="Maintain Emergency Fund",
                description="Keep emergency fund while paying off debt",
                default_value=True,
            ),
            "emergency_fund_target": ParameterSpec(
                type="number",
                label="Emergency Fund Target",
                description="Target emergency fund amount (months of expenses)",
                default_value=3,
                min=1,
                max=12,
                step=0.5,
            ),
        }

    def can_apply(self, context: ExecutionContext) -> ApplicabilityResult:
        if not has_existing_debt(context.current_events):
            return ApplicabilityResult(
                applicable=False, reasons=["No debts found in current financial plan"]
            )

        debts = extract_debts(context.current_events)
        if sum(debt.balance for debt in debts) < MIN_TOTAL_DEBT:
            return ApplicabilityResult(
                applicable=False,
                reasons=["Total debt amount is too small to benefit from systematic payoff"],
            )

        extra_payment = context.user_inputs.get("extra_payment")
        if not is_number(extra_payment) or extra_payment <= 0:
            return ApplicabilityResult(
                applicable=False,
                reasons=["Additional payment amount must be greater than zero"],
            )

        return ApplicabilityResult(
            applicable=True, reasons=["Strategy applicable to current debt situation"]
        )

    def validate_inputs(self, inputs: Dict[str, Any]) -> InputValidation:
        return validate_parameters(self.definition.parameters, inputs)

    def execute(self, context: ExecutionContext) -> StrategyResult:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        method = inputs["method"]
        extra_payment = inputs["extra_payment"]
        debts = order_debts(extract_debts(context.current_events), method)

        generated_events: List[GeneratedEvent] = []
        modified_events: List[ModifiedEvent] = []

        for index, debt in enumerate(debts):
            is_target = index == 0
            payment = debt.minimum_payment + (extra_payment if is_target else 0)
            if payment <= 0:
                logger.warning(f"Skipping {debt.name}: no minimum payment recorded")
                continue

            event = build_event(
                EventType.LIABILITY_PAYMENT,
                name=f"Extra Payment - {debt.name}" if is_target else f"Minimum Payment - {debt.name}",
                description=(
                    f"Accelerated payment for {debt.name} ({method} method)"
                    if is_target
                    else f"Minimum payment for {debt.name} while other debt is targeted"
                ),
                amount=payment,
                frequency="monthly",
                priority=1,
                liability_name=debt.name,
                start_date_offset=0,
                end_date_offset=math.ceil(debt.balance / payment),
                metadata=StrategyMetadata(
                    strategy_id=self.id,
                    account_preference=debt.name,
                    is_auto_generated=True,
                    automation_type="debt_payoff",
                ),
            )
            generated, modified = generate_or_modify(
                context.current_events,
                event,
                reason=(
                    f"Target debt for extra payment ({debt.interest_rate * 100:.1f}% interest)"
                    if is_target
                    else "Minimum payment maintained"
                ),
                importance="HIGH" if is_target else "MEDIUM",
                change_reason="Debt payoff plan recalculated",
                update_fields=("name", "amount", "description", "end_date_offset"),
            )
            if generated is not None:
                generated_events.append(generated)
            if modified is not None:
                modified_events.append(modified)

        logger.info(f"{method.title()} payoff across {len(debts)} debts with ${extra_payment:,.0f}/mo extra")

        return success_result(
            self,
            new_plan_name="Debt Avalanche Plan" if method == "avalanche" else "Debt Snowball Plan",
            generated_events=generated_events,
            recommendations=self._recommendations(),
            impact=self.impact_for(debts, extra_payment),
            warnings=self._warnings(debts, extra_payment),
            next_steps=self._next_steps(method),
            modified_events=modified_events,
            policy=PolicySummary(
                summary=" → ".join(debt.name for debt in debts) or "No debts to pay",
                details=[f"Extra ${extra_payment:,.0f}/mo to {debts[0].name}"] if debts else [],
                configuration={"method": method, "extra_payment": extra_payment},
            ),
        )

    def impact_for(self, debts: List[DebtInfo], extra_payment: float) -> StrategyImpact:
        """Cash-flow cost and interest saved compared with minimum payments only."""
        monthly_payment = sum(debt.minimum_payment for debt in debts) + extra_payment
        _, interest_minimum_only = simulate_payoff(debts, 0.0)
        months, interest_with_plan = simulate_payoff(debts, extra_payment)
        interest_savings = max(0.0, interest_minimum_only - interest_with_plan)

        logger.debug(f"Debt free in {months} months, saving ${interest_savings:,.0f} interest")

        return StrategyImpact(
            cash_flow_impact=CashFlowImpact(
                monthly_change=-monthly_payment,
                annual_change=-monthly_payment * 12,
                first_year_total=-monthly_payment * 12,
            ),
            net_worth_impact=NetWorthImpact(
                five_year_projection=interest_savings,
                ten_year_projection=interest_savings * 1.5,
                retirement_impact=interest_savings * 3,
            ),
            risk_factors=[
                RiskFactor(
                    factor="Reduced liquidity during payoff period",
                    severity="MEDIUM",
                    mitigation="Maintain emergency fund as specified",
                ),
                RiskFactor(
                    factor="Opportunity cost of not investing",
                    severity="LOW",
                    mitigation="Guaranteed return from debt payoff vs uncertain investment returns",
                ),
            ],
        )

    def estimate_impact(self, context: ExecutionContext) -> StrategyImpact:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        debts = order_debts(extract_debts(context.current_events), inputs["method"])
        return self.impact_for(debts, inputs["extra_payment"])

    def _recommendations(self):
        return [
            recommendation(
                "Automate Extra Payments",
                "Set up automatic transfers to ensure consistent extra payments",
                priority="HIGH",
                estimated_benefit="Prevents spending extra payment money elsewhere",
                time_to_implement="30 minutes",
                difficulty="EASY",
            ),
            recommendation(
                "Track Progress Monthly",
                "Monitor debt balances and celebrate milestones",
                type="CONSIDERATION",
                estimated_benefit="Maintains motivation and identifies issues early",
                time_to_implement="15 minutes monthly",
                difficulty="EASY",
            ),
            recommendation(
                "Consider Balance Transfers",
                "Look for 0% APR balance transfer offers for high-interest debt",
                type="OPTIMIZATION",
                estimated_benefit="Could save thousands in interest",
                time_to_implement="2-3 hours research",
            ),
        ]

    def _warnings(self, debts: List[DebtInfo], extra_payment: float) -> List[str]:
        warnings = []

        high_interest = [debt for debt in debts if debt.interest_rate > HIGH_INTEREST_RATE]
        if high_interest:
            warnings.append(
                f"You have {len(high_interest)} debt(s) with interest rates above 20%. "
                "Consider balance transfers."
            )

        minimums = sum(debt.minimum_payment for debt in debts)
        if extra_payment > minimums * 3:
            warnings.append(
                "Extra payment is very aggressive. Ensure you maintain adequate emergency fund."
            )

        return warnings

    def _next_steps(self, method: str) -> List[str]:
        focus = "highest interest" if method == "avalanche" else "smallest balance"
        return [
            "Review and adjust the generated payment events as needed",
            "Set up automatic transfers for extra payments",
            "Update your budget to accommodate the payment plan",
            f"Focus all extra payments on the {focus} debt first",
            "Run the simulation to see your debt-free timeline",
            "Schedule monthly reviews to track progress",
        ]
