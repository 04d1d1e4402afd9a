"""
Contribution optimization strategy.

Allocates an annual savings target across tax-advantaged accounts in order
of value: employer match, HSA, the rest of the 401(k), IRA (subject to
income limits), after-tax 401(k) for the mega backdoor Roth, and finally a
taxable account. Backdoor and mega backdoor Roth moves are emitted as
yearly scheduled contribution/conversion pairs running until retirement.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.allocation import WaterfallBucket, allocate_waterfall
from ..models.events import EventType, StrategyMetadata
from ..models.schedule import ScheduleConfig
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
    TaxImpact,
)
from .base import (
    build_event,
    estimate_monthly_income,
    find_strategy_events,
    future_value,
    generate_or_modify,
    modify_event,
    recommendation,
    resolve_inputs,
    strategy_event,
    success_result,
    validate_parameters,
)

logger = logging.getLogger(__name__)

# Simplified IRA income limits: (full contribution below, half contribution below)
IRA_INCOME_LIMITS = {
    "single": (77000, 138000),
    "married_jointly": (123000, 218000),
    "married_separately": (10000, 10000),
    "head_of_household": (77000, 138000),
}

FILING_STATUS_OPTIONS = [
    ParameterOption(value="single", label="Single"),
    ParameterOption(value="married_jointly", label="Married Filing Jointly"),
    ParameterOption(value="married_separately", label="Married Filing Separately"),
    ParameterOption(value="head_of_household", label="Head of Household"),
]


class ContributionLimits(BaseModel):
    """Annual contribution limits for one age."""

    employee_401k: float = Field(..., description="Employee 401(k) deferral limit")
    total_401k: float = Field(..., description="Total 401(k) limit including employer money")
    ira: float = Field(..., description="IRA contribution limit")
    hsa: float = Field(..., description="HSA contribution limit")


class ContributionPlan(BaseModel):
    """Annual amounts per account produced by the waterfall."""

    employer_match: float = 0.0
    employee_401k_traditional: float = 0.0
    employee_401k_roth: float = 0.0
    traditional_ira: float = 0.0
    roth_ira: float = 0.0
    backdoor_roth: float = 0.0
    hsa: float = 0.0
    after_tax_401k: float = 0.0
    taxable: float = 0.0

    @property
    def total_contributions(self) -> float:
        """Employee money saved per year (employer match excluded)."""
        return (
            self.employee_401k_traditional
            + self.employee_401k_roth
            + self.traditional_ira
            + self.roth_ira
            + self.backdoor_roth
            + self.hsa
            + self.after_tax_401k
            + self.taxable
        )

    @property
    def traditional_total(self) -> float:
        return self.employee_401k_traditional + self.traditional_ira

    @property
    def roth_total(self) -> float:
        return self.employee_401k_roth + self.roth_ira + self.backdoor_roth


def contribution_limits(age: int) -> ContributionLimits:
    """Contribution limits with catch-up amounts at 50 (and 55 for HSA)."""
    catch_up = age >= 50
    return ContributionLimits(
        employee_401k=30000 if catch_up else 23000,
        total_401k=76000 if catch_up else 69000,
        ira=8000 if catch_up else 7000,
        hsa=5150 if age >= 55 else 4150,
    )


def ira_limit(income: float, filing_status: str, full_limit: float = 7000) -> float:
    """Directly contributable IRA amount for an income: full, half, or nothing."""
    full_below, partial_below = IRA_INCOME_LIMITS.get(filing_status, IRA_INCOME_LIMITS["single"])
    if income < full_below:
        return full_limit
    if income < partial_below:
        return full_limit * 0.5
    return 0.0


class ContributionOptimizationStrategy:
    """Tax-efficient ordering of retirement contributions."""

    id = "contribution-optimization"
    name = "Contribution Optimizer"
    category = StrategyCategory.RETIREMENT_OPTIMIZATION

    def __init__(self, return_rate: float = 0.07):
        self.return_rate = return_rate
        self.definition = StrategyDefinition(
            id=self.id,
            name=self.name,
            description=(
                "Optimize retirement contributions across all available accounts "
                "for maximum tax efficiency and employer benefits"
            ),
            category=self.category,
            priority="HIGH",
            difficulty="INTERMEDIATE",
            estimated_timeframe_months=6,
            tags=[
                "401k",
                "ira",
                "hsa",
                "employer-match",
                "tax-efficiency",
                "contribution-limits",
                "backdoor-roth",
            ],
            parameters=self.get_parameters(),
        )

    def get_parameters(self) -> ParameterSchema:
        return {
            "annual_income": ParameterSpec(
                type="number",
                label="Annual Gross Income",
                description="Your total annual gross income",
                default_value=100000,
                min=30000,
                max=500000,
                step=5000,
                required=True,
            ),
            "has_401k": ParameterSpec(
                type="boolean",
                label="Have 401(k) Access",
                description="Do you have access to a 401(k) plan?",
                default_value=True,
            ),
            "employer_match": ParameterSpec(
                type="percentage",
                label="Employer 401(k) Match",
                description="Share of matched contributions the employer adds (e.g. 50% of first 6%)",
                default_value=0.5,
                min=0,
                max=1,
                step=0.05,
            ),
            "employer_match_limit": ParameterSpec(
                type="percentage",
                label="Match Contribution Limit",
                description="Maximum salary percentage that gets matched",
                default_value=0.06,
                min=0,
                max=0.15,
                step=0.01,
            ),
            "has_hsa": ParameterSpec(
                type="boolean",
                label="Have HSA Access",
                description="Do you have access to a Health Savings Account?",
                default_value=False,
            ),
            "filing_status": ParameterSpec(
                type="selection",
                label="Tax Filing Status",
                description="Your tax filing status (affects IRA limits)",
                default_value="single",
                options=FILING_STATUS_OPTIONS,
                required=True,
            ),
            "target_savings_rate": ParameterSpec(
                type="percentage",
                label="Target Savings Rate",
                description="Target percentage of income to save for retirement",
                default_value=0.15,
                min=0.05,
                max=0.50,
                step=0.01,
                required=True,
            ),
            "prioritize_roth": ParameterSpec(
                type="boolean",
                label="Prioritize Roth Contributions",
                description="Prefer Roth contributions when tax-advantaged",
                default_value=False,
            ),
            "max_out_401k": ParameterSpec(
                type="boolean",
                label="Maximize 401(k) Contributions",
                description="Attempt to max out 401(k) contribution limits",
                default_value=False,
            ),
            "consider_backdoor_roth": ParameterSpec(
                type="boolean",
                label="Consider Backdoor Roth IRA",
                description="Implement backdoor Roth IRA if income limits exceeded",
                default_value=True,
            ),
            "consider_mega_backdoor_roth": ParameterSpec(
                type="boolean",
                label="Consider Mega Backdoor Roth",
                description="Use after-tax 401(k) contributions with in-service conversions",
                default_value=False,
            ),
            "marginal_tax_rate": ParameterSpec(
                type="percentage",
                label="Marginal Tax Rate",
                description="Your current marginal tax rate",
                default_value=0.24,
                min=0.10,
                max=0.37,
                step=0.01,
                required=True,
            ),
            "expected_retirement_tax_rate": ParameterSpec(
                type="percentage",
                label="Expected Retirement Tax Rate",
                description="Expected tax rate in retirement",
                default_value=0.15,
                min=0.10,
                max=0.30,
                step=0.01,
            ),
        }

    def can_apply(self, context: ExecutionContext) -> ApplicabilityResult:
        reasons = []

        if estimate_monthly_income(context.current_events) <= 0:
            reasons.append(
                "No employment income detected - contribution optimization requires regular income"
            )

        if context.current_age < 18 or context.current_age > 70:
            reasons.append("Strategy most beneficial for working-age individuals (18-70)")

        return ApplicabilityResult(applicable=not reasons, reasons=reasons)

    def validate_inputs(self, inputs: Dict[str, Any]) -> InputValidation:
        return validate_parameters(self.definition.parameters, inputs)

    def plan_contributions(self, inputs: Dict[str, Any], age: int) -> ContributionPlan:
        """
        Run the contribution waterfall for one year.

        Order: employer match, HSA, remaining 401(k) space, IRA, after-tax
        401(k), taxable. The first four share the savings target; after-tax
        401(k) space depends on what the first stage used, so it and the
        taxable overflow are allocated in a second stage.
        """
        inputs = resolve_inputs(self.definition.parameters, inputs)
        limits = contribution_limits(age)
        income = inputs["annual_income"]
        has_401k = bool(inputs["has_401k"])

        match_cap = min(income * inputs["employer_match_limit"], limits.employee_401k)
        match_eligible = has_401k and inputs["employer_match"] > 0

        direct_ira = ira_limit(income, inputs["filing_status"], limits.ira)
        use_backdoor = direct_ira == 0 and bool(inputs["consider_backdoor_roth"])
        ira_cap = limits.ira if use_backdoor else direct_ira

        budget = income * inputs["target_savings_rate"]
        if inputs["max_out_401k"] and has_401k:
            budget = max(budget, limits.employee_401k + (limits.hsa if inputs["has_hsa"] else 0))

        first_stage = allocate_waterfall(
            budget,
            [
                WaterfallBucket(name="match", cap=match_cap if match_eligible else 0),
                WaterfallBucket(name="hsa", cap=limits.hsa, eligible=bool(inputs["has_hsa"])),
                WaterfallBucket(
                    name="401k",
                    cap=limits.employee_401k - (match_cap if match_eligible else 0),
                    eligible=has_401k,
                ),
                WaterfallBucket(name="ira", cap=ira_cap),
            ],
        )

        matched = first_stage.amount("match")
        employer_match = matched * inputs["employer_match"]
        employee_401k = matched + first_stage.amount("401k")
        after_tax_cap = max(0.0, limits.total_401k - employee_401k - employer_match)

        second_stage = allocate_waterfall(
            first_stage.unallocated,
            [
                WaterfallBucket(
                    name="after_tax_401k",
                    cap=after_tax_cap,
                    eligible=has_401k and bool(inputs["consider_mega_backdoor_roth"]),
                )
            ],
            overflow_bucket="taxable",
        )

        prefer_roth = bool(inputs["prioritize_roth"]) or (
            inputs["marginal_tax_rate"] < inputs["expected_retirement_tax_rate"]
        )
        remaining_401k = first_stage.amount("401k")
        ira_amount = first_stage.amount("ira")

        plan = ContributionPlan(
            employer_match=employer_match,
            employee_401k_traditional=matched + (0 if prefer_roth else remaining_401k),
            employee_401k_roth=remaining_401k if prefer_roth else 0,
            hsa=first_stage.amount("hsa"),
            after_tax_401k=second_stage.amount("after_tax_401k"),
            taxable=second_stage.amount("taxable"),
        )
        if use_backdoor:
            plan.backdoor_roth = ira_amount
        elif prefer_roth:
            plan.roth_ira = ira_amount
        else:
            plan.traditional_ira = ira_amount
        return plan

    def execute(self, context: ExecutionContext) -> StrategyResult:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        plan = self.plan_contributions(inputs, context.current_age)

        generated_events: List[GeneratedEvent] = []
        modified_events: List[ModifiedEvent] = []

        def collect(pair: Tuple[Optional[GeneratedEvent], Optional[ModifiedEvent]]) -> None:
            generated, modified = pair
            if generated is not None:
                generated_events.append(generated)
            if modified is not None:
                modified_events.append(modified)

        for event, reason, importance in self._contribution_events(context, plan):
            collect(
                generate_or_modify(
                    context.current_events,
                    event,
                    reason,
                    importance=importance,
                    change_reason="Updated contribution optimization",
                )
            )

        if plan.backdoor_roth > 0:
            self._scheduled_pair(
                context,
                generated_events,
                modified_events,
                plan.backdoor_roth,
                contribution_type=EventType.SCHEDULED_CONTRIBUTION,
                contribution_tag="backdoor_ira",
                contribution_name="Backdoor Roth: Traditional IRA Contribution",
                contribution_description="Non-deductible traditional IRA contribution",
                source_account="tax_deferred",
                conversion_tag="backdoor_roth",
                conversion_name="Backdoor Roth: IRA to Roth Conversion",
                conversion_description="Convert traditional IRA to Roth IRA",
                label="backdoor Roth IRA strategy",
                importance="HIGH",
            )

        if plan.after_tax_401k > 0:
            self._scheduled_pair(
                context,
                generated_events,
                modified_events,
                plan.after_tax_401k,
                contribution_type=EventType.MEGA_BACKDOOR_ROTH,
                contribution_tag="after_tax_401k",
                contribution_name="Mega Backdoor Roth: After-Tax 401(k)",
                contribution_description="After-tax 401(k) contributions",
                source_account="after_tax_401k",
                conversion_tag="mega_backdoor_roth",
                conversion_name="Mega Backdoor Roth: In-Service Conversion",
                conversion_description="Convert after-tax 401(k) to Roth",
                label="mega backdoor Roth strategy",
                importance="MEDIUM",
            )

        logger.info(
            f"Contribution plan for age {context.current_age}: "
            f"{plan.total_contributions:.0f}/yr employee, {plan.employer_match:.0f}/yr match"
        )

        return success_result(
            self,
            new_plan_name="Optimized Contribution Plan",
            generated_events=generated_events,
            recommendations=self._recommendations(inputs, plan, context.current_age),
            impact=self.impact_for(plan, inputs),
            warnings=self._warnings(inputs, plan),
            next_steps=self._next_steps(plan),
            modified_events=modified_events,
            policy=self._policy(plan),
        )

    def _metadata(self, account_tag: str, **extra: Any) -> StrategyMetadata:
        return StrategyMetadata(
            strategy_id=self.id,
            account_preference=account_tag,
            is_auto_generated=True,
            automation_type="contribution_optimization",
            **extra,
        )

    def _contribution_events(self, context: ExecutionContext, plan: ContributionPlan):
        start = date(context.current_year, 1, 1)
        # (amount, type, account tag, target account, name, reason, importance)
        rows = [
            (plan.employee_401k_traditional, EventType.SCHEDULED_CONTRIBUTION, "401k_traditional",
             "tax_deferred", "Optimized 401(k) Traditional Contributions",
             "Optimized traditional 401(k) contributions for tax deferral", "HIGH"),
            (plan.employee_401k_roth, EventType.SCHEDULED_CONTRIBUTION, "401k_roth",
             "roth", "Optimized 401(k) Roth Contributions",
             "Optimized Roth 401(k) contributions for tax-free growth", "HIGH"),
            (plan.employer_match, EventType.ACCOUNT_CONTRIBUTION, "employer_match",
             "tax_deferred", "Employer 401(k) Match",
             "Free money from employer 401(k) matching program", "CRITICAL"),
            (plan.hsa, EventType.SCHEDULED_CONTRIBUTION, "hsa",
             "hsa", "HSA Max Contributions",
             "Triple tax advantage - deductible, growth, and qualified withdrawals", "CRITICAL"),
            (plan.traditional_ira, EventType.SCHEDULED_CONTRIBUTION, "ira_traditional",
             "tax_deferred", "Traditional IRA Contributions",
             "Traditional IRA contributions for additional tax deferral", "HIGH"),
            (plan.roth_ira, EventType.SCHEDULED_CONTRIBUTION, "ira_roth",
             "roth", "Roth IRA Contributions",
             "Roth IRA contributions for tax-free retirement income", "HIGH"),
            (plan.taxable, EventType.SCHEDULED_CONTRIBUTION, "taxable",
             "taxable", "Taxable Brokerage Contributions",
             "Savings beyond tax-advantaged limits go to a taxable account", "MEDIUM"),
        ]

        for amount, event_type, tag, account, name, reason, importance in rows:
            if amount <= 0:
                continue
            event = build_event(
                event_type,
                name=name,
                description=f"Annual {name.lower()}: ${amount:,.0f}",
                amount=amount,
                month_offset=1,
                start_date=start,
                frequency="annually",
                target_account_type=account,
                metadata=self._metadata(tag),
            )
            yield event, reason, importance

    def _scheduled_pair(
        self,
        context: ExecutionContext,
        generated_events: List[GeneratedEvent],
        modified_events: List[ModifiedEvent],
        amount: float,
        contribution_type: EventType,
        contribution_tag: str,
        contribution_name: str,
        contribution_description: str,
        source_account: str,
        conversion_tag: str,
        conversion_name: str,
        conversion_description: str,
        label: str,
        importance: str,
    ) -> None:
        """Yearly contribution followed a month later by a Roth conversion, until retirement."""
        last_year = context.current_year + context.years_to_retirement
        end = date(last_year, 12, 31)

        contribution = build_event(
            contribution_type,
            name=contribution_name,
            description=f"{contribution_description}: ${amount:,.0f}",
            amount=amount,
            frequency="annually",
            target_account_type=source_account,
            metadata=self._metadata(contribution_tag),
            schedule=ScheduleConfig(
                frequency="annually", start_date=date(context.current_year, 1, 15), end_date=end
            ),
        )
        conversion = build_event(
            EventType.ROTH_CONVERSION,
            name=conversion_name,
            description=f"{conversion_description}: ${amount:,.0f}",
            amount=amount,
            frequency="annually",
            from_account_type=source_account,
            target_account_type="roth",
            metadata=self._metadata(conversion_tag),
            schedule=ScheduleConfig(
                frequency="annually", start_date=date(context.current_year, 2, 15), end_date=end
            ),
        )

        for step, (event, tag) in enumerate(
            [(contribution, contribution_tag), (conversion, conversion_tag)], start=1
        ):
            existing = find_strategy_events(context.current_events, event.type, self.id, tag)
            if existing:
                # Earlier runs already expanded the schedule; update every occurrence
                modified_events.extend(
                    modify_event(previous, event, f"Updated {label}") for previous in existing
                )
            else:
                generated_events.append(
                    strategy_event(event, f"Step {step} of {label}", importance)
                )

    def _recommendations(self, inputs: Dict[str, Any], plan: ContributionPlan, age: int):
        recommendations = []

        if inputs["has_401k"] and inputs["employer_match"] > 0:
            recommendations.append(
                recommendation(
                    "Maximize Employer 401(k) Match",
                    f"Contribute at least {inputs['employer_match_limit'] * 100:.1f}% to get "
                    f"full employer match of ${plan.employer_match:,.0f}.",
                    priority="HIGH",
                    estimated_benefit=f"{inputs['employer_match'] * 100:.0f}% guaranteed return",
                    time_to_implement="Next payroll",
                )
            )

        if inputs["has_hsa"]:
            recommendations.append(
                recommendation(
                    "Maximize HSA Contributions",
                    "HSA offers triple tax advantage - deductible, tax-free growth, "
                    "and tax-free qualified withdrawals.",
                    priority="HIGH",
                    estimated_benefit="Triple tax savings",
                    time_to_implement="Next contribution",
                )
            )

        if age >= 50:
            recommendations.append(
                recommendation(
                    "Utilize Catch-Up Contributions",
                    "Take advantage of higher contribution limits available at age 50+.",
                    priority="HIGH",
                    estimated_benefit="Additional $7,000 401(k) + $1,000 IRA",
                    time_to_implement="Immediate",
                )
            )

        if plan.traditional_total > 0:
            recommendations.append(
                recommendation(
                    "Consider Tax Diversification",
                    "Balance traditional (tax-deferred) and Roth (tax-free) contributions "
                    "for retirement flexibility.",
                    type="CONSIDERATION",
                    estimated_benefit="Tax flexibility in retirement",
                    time_to_implement="Next enrollment",
                )
            )

        recommendations.append(
            recommendation(
                "Automate All Contributions",
                "Set up automatic payroll deductions and contributions to ensure consistent investing.",
                estimated_benefit="Consistent investing discipline",
                time_to_implement="1-2 weeks",
            )
        )
        return recommendations

    def _warnings(self, inputs: Dict[str, Any], plan: ContributionPlan) -> List[str]:
        warnings = []
        income = inputs["annual_income"]

        full_match = income * inputs["employer_match_limit"]
        if inputs["has_401k"] and inputs["employer_match"] > 0 and plan.employee_401k_traditional + plan.employee_401k_roth < full_match:
            warnings.append(
                "Not contributing enough to get full employer 401(k) match - missing free money"
            )

        if income > 0 and plan.total_contributions / income < 0.10:
            warnings.append(
                "Total savings rate below 10% - may not be sufficient for retirement goals"
            )

        if plan.traditional_total > 0 and plan.roth_total == 0:
            warnings.append("Consider some Roth contributions for tax diversification in retirement")

        if plan.roth_total > plan.traditional_total * 3 and inputs["marginal_tax_rate"] > 0.24:
            warnings.append(
                "High tax bracket - consider more traditional (tax-deferred) contributions"
            )

        return warnings

    def _next_steps(self, plan: ContributionPlan) -> List[str]:
        steps = [
            "Review current payroll deductions and update contribution percentages",
            "Set up automatic IRA contributions if not employer-sponsored",
            "Ensure investment selections are appropriate for each account type",
            "Review and update beneficiaries on all retirement accounts",
        ]
        if plan.employer_match > 0:
            steps.insert(0, "Verify you're contributing enough to get full employer match")
        if plan.hsa > 0:
            steps.append("Keep HSA receipts and consider using HSA as retirement account")
        if plan.after_tax_401k > 0:
            steps.append(
                "Verify your 401(k) plan allows in-service conversions for mega backdoor Roth"
            )
        return steps

    def _policy(self, plan: ContributionPlan) -> PolicySummary:
        order = [
            ("Match", plan.employer_match),
            ("HSA", plan.hsa),
            ("401k", plan.employee_401k_traditional + plan.employee_401k_roth),
            ("IRA", plan.traditional_ira + plan.roth_ira + plan.backdoor_roth),
            ("After-tax 401k", plan.after_tax_401k),
            ("Taxable", plan.taxable),
        ]
        flow = [label for label, amount in order if amount]
        return PolicySummary(
            summary=f"${plan.total_contributions:,.0f}/yr → " + " → ".join(flow)
            if flow
            else "No contributions configured",
            details=[
                f"Employee contributions: ${plan.total_contributions:,.0f}/year",
                f"Employer match: ${plan.employer_match:,.0f}/year",
            ],
            configuration=plan.model_dump(),
        )

    def impact_for(self, plan: ContributionPlan, inputs: Dict[str, Any]) -> StrategyImpact:
        """Cash-flow, growth and tax effect of a contribution plan."""
        deductible = plan.employee_401k_traditional + plan.traditional_ira + plan.hsa
        annual_tax_savings = deductible * inputs["marginal_tax_rate"]
        annual_change = -plan.total_contributions + plan.employer_match + annual_tax_savings
        invested = plan.total_contributions + plan.employer_match

        return StrategyImpact(
            cash_flow_impact=CashFlowImpact(
                monthly_change=annual_change / 12,
                annual_change=annual_change,
                first_year_total=annual_change,
            ),
            net_worth_impact=NetWorthImpact(
                five_year_projection=future_value(invested, self.return_rate, 5),
                ten_year_projection=future_value(invested, self.return_rate, 10),
                retirement_impact=future_value(invested, self.return_rate, 30),
            ),
            tax_impact=TaxImpact(
                annual_tax_savings=annual_tax_savings,
                lifetime_tax_savings=annual_tax_savings * 30,
            ),
            risk_factors=[
                RiskFactor(
                    factor="Market Volatility",
                    severity="MEDIUM",
                    mitigation="Dollar-cost averaging through systematic contributions",
                ),
                RiskFactor(
                    factor="Inflation Risk",
                    severity="LOW",
                    mitigation="Growth-oriented investment allocation",
                ),
                RiskFactor(
                    factor="Liquidity Constraints",
                    severity="MEDIUM",
                    mitigation="Maintain emergency fund outside retirement accounts",
                ),
            ],
        )

    def estimate_impact(self, context: ExecutionContext) -> StrategyImpact:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        plan = self.plan_contributions(inputs, context.current_age)
        return self.impact_for(plan, inputs)
