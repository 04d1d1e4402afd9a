"""
Investment contribution strategy.

Splits a monthly savings budget across 401(k), IRA and taxable accounts
with a capped waterfall and sets up one monthly contribution event per
funded account.
"""

import logging
from datetime import date
from typing import Any, Dict, List

from ..models.allocation import AllocationPlan, WaterfallBucket, allocate_waterfall
from ..models.events import EventType, StrategyMetadata
from ..models.strategy import (
    ApplicabilityResult,
    CashFlowImpact,
    ExecutionContext,
    InputValidation,
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
    TaxImpact,
)
from .base import (
    build_event,
    estimate_monthly_income,
    future_value,
    generate_or_modify,
    recommendation,
    resolve_inputs,
    success_result,
    validate_parameters,
)

logger = logging.getLogger(__name__)

ASSUMED_MARGINAL_TAX_RATE = 0.24

# (bucket, target account type, event name, reason, importance)
_ACCOUNTS = [
    ("401k", "tax_deferred", "Monthly 401(k) Contribution", "Set up automated monthly 401(k) contributions", "HIGH"),
    ("ira", "tax_deferred", "Monthly IRA Contribution", "Set up automated monthly IRA contributions", "HIGH"),
    ("taxable", "taxable", "Monthly Taxable Investment", "Set up automated monthly taxable brokerage contributions", "MEDIUM"),
]

_LABELS = {"401k": "401k", "ira": "IRA", "taxable": "Taxable"}


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


class InvestmentContributionStrategy:
    """Automated monthly contributions: 401(k) first, then IRA, then taxable."""

    id = "investment-optimization"
    name = "Cash Flow & Investment Policy"
    category = StrategyCategory.INVESTMENT_STRATEGY

    def __init__(self, return_rate: float = 0.07):
        self.return_rate = return_rate
        self.definition = StrategyDefinition(
            id=self.id,
            name=self.name,
            description=(
                "Set up automated savings and investments: emergency fund, "
                "retirement contributions, and taxable investments"
            ),
            category=self.category,
            priority="HIGH",
            difficulty="BEGINNER",
            estimated_timeframe_months=3,
            tags=[
                "cash-flow",
                "emergency-fund",
                "dollar-cost-averaging",
                "automated-investing",
                "retirement-contributions",
            ],
            parameters=self.get_parameters(),
        )

    def get_parameters(self) -> ParameterSchema:
        return {
            "monthly_investment": ParameterSpec(
                type="number",
                label="Total Monthly Savings",
                description="Total amount to save/invest monthly across all accounts",
                default_value=3000,
                min=100,
                max=50000,
                step=100,
                required=True,
            ),
            "emergency_fund_months": ParameterSpec(
                type="number",
                label="Emergency Fund Target (months)",
                description="Target months of expenses to save for emergencies",
                default_value=6,
                min=3,
                max=12,
                step=1,
            ),
            "monthly_expenses": ParameterSpec(
                type="number",
                label="Monthly Expenses",
                description="Your average monthly living expenses",
                default_value=4000,
                min=1000,
                max=50000,
                step=100,
            ),
            "max_401k_monthly": ParameterSpec(
                type="number",
                label="Max 401(k) Monthly",
                description="Maximum monthly 401(k) contribution (IRS limit: $1,833/mo)",
                default_value=1833,
                min=0,
                max=1833,
                step=50,
            ),
            "max_ira_monthly": ParameterSpec(
                type="number",
                label="Max IRA Monthly",
                description="Maximum monthly IRA contribution (IRS limit: $542/mo)",
                default_value=542,
                min=0,
                max=542,
                step=50,
            ),
            "has_401k": ParameterSpec(
                type="boolean",
                label="Have 401(k) Access",
                description="Contribute to employer 401(k) plan",
                default_value=True,
            ),
            "has_ira": ParameterSpec(
                type="boolean",
                label="Contribute to IRA",
                description="Make IRA contributions",
                default_value=True,
            ),
            "contribute_taxable": ParameterSpec(
                type="boolean",
                label="Invest in Taxable Account",
                description="Invest remaining funds in taxable brokerage",
                default_value=True,
            ),
            "priority": ParameterSpec(
                type="selection",
                label="Priority Level",
                description="Implementation priority for this strategy",
                default_value="MEDIUM",
                options=[
                    ParameterOption(value="HIGH", label="High Priority"),
                    ParameterOption(value="MEDIUM", label="Medium Priority"),
                    ParameterOption(value="LOW", label="Low Priority"),
                ],
            ),
        }

    def can_apply(self, context: ExecutionContext) -> ApplicabilityResult:
        # Setup strategy: always applicable, missing income is only advisory
        reasons = []
        if estimate_monthly_income(context.current_events) <= 0:
            reasons.append(
                "Recommended: Add income events for more realistic investment projections"
            )
        return ApplicabilityResult(applicable=True, reasons=reasons)

    def validate_inputs(self, inputs: Dict[str, Any]) -> InputValidation:
        validation = validate_parameters(self.definition.parameters, inputs)
        errors = dict(validation.errors)

        resolved = resolve_inputs(self.definition.parameters, inputs)
        if not (resolved["has_401k"] or resolved["has_ira"] or resolved["contribute_taxable"]):
            errors["general"] = "Must select at least one account type for contributions"

        return InputValidation(valid=not errors, errors=errors)

    def allocate(self, inputs: Dict[str, Any]) -> AllocationPlan:
        """Monthly budget split 401(k) -> IRA -> taxable overflow."""
        resolved = resolve_inputs(self.definition.parameters, inputs)
        buckets = [
            WaterfallBucket(
                name="401k", cap=resolved["max_401k_monthly"], eligible=bool(resolved["has_401k"])
            ),
            WaterfallBucket(
                name="ira", cap=resolved["max_ira_monthly"], eligible=bool(resolved["has_ira"])
            ),
        ]
        overflow = "taxable" if resolved["contribute_taxable"] else None
        return allocate_waterfall(resolved["monthly_investment"], buckets, overflow_bucket=overflow)

    def execute(self, context: ExecutionContext) -> StrategyResult:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        monthly_amount = inputs["monthly_investment"]
        plan = self.allocate(inputs)

        emergency_fund_target = inputs["emergency_fund_months"] * inputs["monthly_expenses"]
        start = date(context.current_year, 1, 1)

        generated_events = []
        modified_events = []

        for bucket, account_type, event_name, reason, importance in _ACCOUNTS:
            amount = plan.amount(bucket)
            if amount <= 0:
                continue

            event = build_event(
                EventType.SCHEDULED_CONTRIBUTION,
                name=event_name,
                description=f"Automated monthly {_LABELS[bucket]} contribution",
                amount=amount,
                start_date=start,
                frequency="monthly",
                target_account_type=account_type,
                metadata=StrategyMetadata(
                    strategy_id=self.id,
                    account_preference=bucket,
                    is_auto_generated=True,
                    automation_type="dollar_cost_averaging",
                    notes=(
                        f"{_LABELS[bucket]} contribution - activates after emergency fund "
                        f"({_money(emergency_fund_target)}) is complete"
                    ),
                    emergency_fund_target=emergency_fund_target,
                    emergency_fund_months=inputs["emergency_fund_months"],
                    monthly_expenses=inputs["monthly_expenses"],
                ),
            )
            generated, modified = generate_or_modify(
                context.current_events,
                event,
                reason,
                importance=importance,
                change_reason="Updated based on new monthly investment amount",
            )
            if generated is not None:
                generated_events.append(generated)
            if modified is not None:
                modified_events.append(modified)

        warnings = self._warnings(inputs, monthly_amount)

        recommendations = [
            recommendation(
                "Maximize Employer Match",
                "If you have 401(k) match, contribute enough to get full employer match - it's free money!",
                type="OPTIMIZATION",
                priority="HIGH",
                estimated_benefit="Typically 3-6% of salary",
                time_to_implement="30 minutes",
                difficulty="EASY",
            ),
            recommendation(
                "Consider Asset Allocation Strategy",
                "Once contributions are set up, configure asset allocation to optimize risk/return",
                priority="HIGH",
                time_to_implement="1-2 hours",
            ),
            recommendation(
                "Annual Contribution Review",
                "Review and increase contributions annually as income grows",
                type="OPTIMIZATION",
                estimated_benefit="Compound growth boost",
                time_to_implement="Annually",
                difficulty="EASY",
            ),
        ]

        next_steps = [
            "Open investment accounts if not already available",
            "Set up automatic monthly transfers from checking account",
            "Consider configuring Asset Allocation strategy next",
            "Review contribution amounts quarterly",
            "Increase contributions when income grows",
        ]

        logger.info(
            f"Investment plan {monthly_amount}/mo: {plan.allocations}, "
            f"{len(generated_events)} new, {len(modified_events)} updated"
        )

        return success_result(
            self,
            new_plan_name=f"Investment Contributions - {_money(monthly_amount)}/mo",
            generated_events=generated_events,
            recommendations=recommendations,
            impact=self.estimate_impact(context),
            warnings=warnings,
            next_steps=next_steps,
            modified_events=modified_events,
            policy=self.policy_summary(inputs, plan),
        )

    def _warnings(self, inputs: Dict[str, Any], monthly_amount: float) -> List[str]:
        warnings = []
        if not (inputs["has_401k"] or inputs["has_ira"] or inputs["contribute_taxable"]):
            warnings.append("No account types selected - no investment events will be created")
        elif not (inputs["has_401k"] or inputs["has_ira"]):
            warnings.append(
                "No retirement accounts selected - all funds will go to taxable account "
                "(missing tax advantages)"
            )
        if monthly_amount < 500:
            warnings.append(
                "Consider increasing contributions once budget allows - consistency compounds over time"
            )
        if monthly_amount > 10000 and not inputs["has_401k"]:
            warnings.append(
                "Large investment amounts should prioritize tax-advantaged accounts like 401(k)/IRA first"
            )
        return warnings

    def estimate_impact(self, context: ExecutionContext) -> StrategyImpact:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        monthly_amount = inputs["monthly_investment"]
        annual_investment = monthly_amount * 12

        monthly_retirement = min(
            monthly_amount, inputs["max_401k_monthly"] + inputs["max_ira_monthly"]
        )
        tax_savings = monthly_retirement * 12 * ASSUMED_MARGINAL_TAX_RATE

        return StrategyImpact(
            cash_flow_impact=CashFlowImpact(
                monthly_change=-monthly_amount,
                annual_change=-annual_investment,
                first_year_total=-annual_investment,
            ),
            net_worth_impact=NetWorthImpact(
                five_year_projection=round(future_value(annual_investment, self.return_rate, 5)),
                ten_year_projection=round(future_value(annual_investment, self.return_rate, 10)),
                retirement_impact=round(future_value(annual_investment, self.return_rate, 30)),
            ),
            tax_impact=TaxImpact(
                annual_tax_savings=tax_savings,
                lifetime_tax_savings=tax_savings * 30,
            ),
            risk_factors=[
                RiskFactor(
                    factor="Contribution consistency",
                    severity="MEDIUM",
                    mitigation="Automation ensures consistent investing regardless of market conditions",
                ),
                RiskFactor(
                    factor="Account selection",
                    severity="LOW" if inputs["has_401k"] else "MEDIUM",
                    mitigation=(
                        "Prioritizing tax-advantaged accounts"
                        if inputs["has_401k"]
                        else "Consider opening retirement accounts for tax benefits"
                    ),
                ),
            ],
        )

    def policy_summary(self, inputs: Dict[str, Any], plan: AllocationPlan) -> PolicySummary:
        """
        Sidebar summary of the contribution flow.

        Example: "$3,000/mo → 1) 401k ($1,833) → 2) IRA ($542) → 3) Taxable ($625)"
        """
        monthly_amount = inputs["monthly_investment"]
        emergency_fund_target = inputs["emergency_fund_months"] * inputs["monthly_expenses"]

        flow = []
        for bucket, _, _, _, _ in _ACCOUNTS:
            amount = plan.amount(bucket)
            if amount > 0:
                flow.append(f"{len(flow) + 1}) {_LABELS[bucket]} ({_money(amount)})")

        if flow:
            summary = f"{_money(monthly_amount)}/mo → " + " → ".join(flow)
        else:
            summary = "No automatic investments configured"

        return PolicySummary(
            summary=summary,
            details=[
                f"Total: {_money(monthly_amount)}/month",
                f"Annual: {_money(monthly_amount * 12)}/year",
                f"Emergency Fund: {_money(emergency_fund_target)} target",
                "Priority: Cash → 401k → IRA → Taxable",
            ],
            configuration=dict(inputs),
        )
