"""
Financial analysis engine.

Pure functions that derive ratios, a health score and head-to-head comparisons
from statement snapshots. Nothing here touches the network or mutates its
inputs; results are recomputed on demand and never cached.

Every ratio goes through safe_divide, so a zero or missing denominator yields
0 instead of an exception, NaN or infinity.
"""

import logging
import math
from typing import List, Literal, Optional

from pydantic import BaseModel

from app.agents.financial_models import (
    BalanceSheet,
    CashFlowStatement,
    CompanyFinancials,
    FinancialMetrics,
    IncomeStatement,
)

logger = logging.getLogger(__name__)

RiskLevel = Literal["Low", "Medium", "High"]
Winner = Literal["company1", "company2", "tie"]

TIE_THRESHOLD = 0.01


class FinancialRatios(BaseModel):
    ticker: str
    report_period: str
    # Profitability (percent)
    grossProfitMargin: float
    operatingMargin: float
    netProfitMargin: float
    # Liquidity
    currentRatio: float
    quickRatio: float
    # Leverage
    debtToEquity: float
    debtToAssets: float
    # Efficiency
    assetTurnover: float
    returnOnAssets: float
    returnOnEquity: float


class FinancialHealthAnalysis(BaseModel):
    ticker: str
    report_period: str
    overallScore: int
    profitabilityScore: int
    liquidityScore: int
    leverageScore: int
    efficiencyScore: int
    cashFlowScore: int
    strengths: List[str]
    weaknesses: List[str]
    recommendations: List[str]
    riskScore: int
    riskLevel: RiskLevel


class MetricComparison(BaseModel):
    company1Value: float
    company2Value: float
    difference: float
    percentageDifference: float
    winner: Winner


class ProfitabilityComparison(BaseModel):
    grossProfitMargin: MetricComparison
    operatingMargin: MetricComparison
    netProfitMargin: MetricComparison


class LiquidityComparison(BaseModel):
    currentRatio: MetricComparison
    quickRatio: MetricComparison


class LeverageComparison(BaseModel):
    debtToEquity: MetricComparison
    debtToAssets: MetricComparison


class CompanyComparison(BaseModel):
    company1: str
    company2: str
    profitabilityComparison: ProfitabilityComparison
    liquidityComparison: LiquidityComparison
    leverageComparison: LeverageComparison
    recommendation: str


def safe_divide(numerator: Optional[float], denominator: Optional[float]) -> float:
    if not denominator or not numerator:
        return 0.0
    result = numerator / denominator
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def _clamp(score: float) -> int:
    return int(max(0, min(100, score)))


# ---------- RATIOS ----------


def calculate_financial_ratios(income: IncomeStatement, balance_sheet: BalanceSheet) -> FinancialRatios:
    ratios = FinancialRatios(
        ticker=income.ticker,
        report_period=income.report_period,
        grossProfitMargin=safe_divide(income.gross_profit, income.revenue) * 100,
        operatingMargin=safe_divide(income.operating_income, income.revenue) * 100,
        netProfitMargin=safe_divide(income.net_income, income.revenue) * 100,
        currentRatio=safe_divide(balance_sheet.current_assets, balance_sheet.current_liabilities),
        quickRatio=safe_divide(
            balance_sheet.current_assets - balance_sheet.inventory, balance_sheet.current_liabilities
        ),
        debtToEquity=safe_divide(balance_sheet.total_debt, balance_sheet.shareholders_equity),
        debtToAssets=safe_divide(balance_sheet.total_debt, balance_sheet.total_assets),
        assetTurnover=safe_divide(income.revenue, balance_sheet.total_assets),
        returnOnAssets=safe_divide(income.net_income, balance_sheet.total_assets) * 100,
        returnOnEquity=safe_divide(income.net_income, balance_sheet.shareholders_equity) * 100,
    )
    logger.debug("Calculated financial ratios ticker=%s period=%s", ratios.ticker, ratios.report_period)
    return ratios


# ---------- CATEGORY SCORES ----------


def _tiered(value: float, tiers) -> int:
    """First (threshold, points) pair whose threshold `value` exceeds."""
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def _tiered_at_least(value: float, tiers) -> int:
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def calculate_profitability_score(ratios: FinancialRatios) -> int:
    score = (
        _tiered(ratios.grossProfitMargin, ((40, 25), (20, 15), (0, 5)))
        + _tiered(ratios.operatingMargin, ((20, 25), (10, 15), (0, 5)))
        + _tiered(ratios.netProfitMargin, ((15, 25), (5, 15), (0, 5)))
        + _tiered(ratios.returnOnEquity, ((15, 25), (10, 15), (0, 5)))
    )
    return _clamp(score)


def calculate_liquidity_score(ratios: FinancialRatios) -> int:
    score = _tiered_at_least(ratios.currentRatio, ((2, 50), (1.5, 35), (1, 20))) + _tiered_at_least(
        ratios.quickRatio, ((1.5, 50), (1, 35), (0.5, 20))
    )
    return _clamp(score)


def calculate_leverage_score(ratios: FinancialRatios) -> int:
    # Starts perfect and loses points as debt grows
    score = 100
    score -= _tiered(ratios.debtToEquity, ((2, 40), (1, 20), (0.5, 10)))
    score -= _tiered(ratios.debtToAssets, ((0.6, 40), (0.4, 20), (0.2, 10)))
    return _clamp(score)


def calculate_efficiency_score(ratios: FinancialRatios) -> int:
    score = _tiered(ratios.assetTurnover, ((1.5, 50), (1, 35), (0.5, 20))) + _tiered(
        ratios.returnOnAssets, ((10, 50), (5, 35), (0, 20))
    )
    return _clamp(score)


def calculate_cash_flow_score(cash_flow: CashFlowStatement) -> int:
    score = 0
    if cash_flow.net_cash_flow_from_operations > 0:
        score += 40
    if cash_flow.change_in_cash_and_equivalents > 0:
        score += 30
    if (
        cash_flow.capital_expenditure < 0
        and abs(cash_flow.capital_expenditure) < cash_flow.net_cash_flow_from_operations
    ):
        score += 30
    return _clamp(score)


# ---------- INSIGHTS ----------


def identify_strengths(ratios: FinancialRatios, cash_flow: CashFlowStatement) -> List[str]:
    strengths = []
    if ratios.grossProfitMargin > 40:
        strengths.append("High gross profit margin indicates strong pricing power")
    if ratios.netProfitMargin > 15:
        strengths.append("Excellent net profit margin shows efficient operations")
    if ratios.currentRatio >= 2:
        strengths.append("Strong liquidity position with high current ratio")
    if ratios.debtToEquity < 0.5:
        strengths.append("Conservative debt levels reduce financial risk")
    if cash_flow.net_cash_flow_from_operations > 0:
        strengths.append("Positive operating cash flow indicates healthy operations")
    if ratios.returnOnEquity > 15:
        strengths.append("High return on equity shows effective use of shareholder funds")
    return strengths


def identify_weaknesses(ratios: FinancialRatios, cash_flow: CashFlowStatement) -> List[str]:
    weaknesses = []
    if ratios.grossProfitMargin < 20:
        weaknesses.append("Low gross profit margin may indicate pricing pressure")
    if ratios.netProfitMargin < 5:
        weaknesses.append("Low net profit margin suggests operational inefficiencies")
    if ratios.currentRatio < 1:
        weaknesses.append("Current ratio below 1 indicates potential liquidity issues")
    if ratios.debtToEquity > 2:
        weaknesses.append("High debt-to-equity ratio increases financial risk")
    if cash_flow.net_cash_flow_from_operations < 0:
        weaknesses.append("Negative operating cash flow is concerning")
    if ratios.returnOnEquity < 5:
        weaknesses.append("Low return on equity indicates poor shareholder value creation")
    return weaknesses


def generate_recommendations(ratios: FinancialRatios, cash_flow: CashFlowStatement) -> List[str]:
    recommendations = []
    if ratios.grossProfitMargin < 30:
        recommendations.append("Focus on improving pricing strategy or reducing cost of goods sold")
    if ratios.currentRatio < 1.5:
        recommendations.append("Consider improving working capital management")
    if ratios.debtToEquity > 1.5:
        recommendations.append("Consider reducing debt levels to improve financial stability")
    if cash_flow.net_cash_flow_from_operations < ratios.netProfitMargin * 0.8:
        recommendations.append("Focus on converting earnings to cash flow more efficiently")
    return recommendations


# ---------- RISK ----------


def calculate_risk_score(ratios: FinancialRatios, cash_flow: CashFlowStatement) -> int:
    score = 0
    if ratios.currentRatio < 1:
        score += 2
    if ratios.debtToEquity > 2:
        score += 3
    if ratios.netProfitMargin < 0:
        score += 3
    if cash_flow.net_cash_flow_from_operations < 0:
        score += 2
    return score


def risk_level_for_score(risk_score: int) -> RiskLevel:
    if risk_score >= 5:
        return "High"
    if risk_score >= 2:
        return "Medium"
    return "Low"


# ---------- HEALTH ----------


def analyze_financial_health(
    income: IncomeStatement,
    balance_sheet: BalanceSheet,
    cash_flow: CashFlowStatement,
    metrics: Optional[FinancialMetrics] = None,
) -> FinancialHealthAnalysis:
    """
    Score a company's financial health from its latest statements.

    Five category scores (profitability, liquidity, leverage, efficiency,
    cash flow) each land in 0-100; the overall score is their rounded mean.
    `metrics` is accepted for callers that already fetched it but does not
    influence the scores.
    """
    ratios = calculate_financial_ratios(income, balance_sheet)

    profitability = calculate_profitability_score(ratios)
    liquidity = calculate_liquidity_score(ratios)
    leverage = calculate_leverage_score(ratios)
    efficiency = calculate_efficiency_score(ratios)
    cash_flow_score = calculate_cash_flow_score(cash_flow)
    risk_score = calculate_risk_score(ratios, cash_flow)

    analysis = FinancialHealthAnalysis(
        ticker=income.ticker,
        report_period=income.report_period,
        overallScore=round((profitability + liquidity + leverage + efficiency + cash_flow_score) / 5),
        profitabilityScore=profitability,
        liquidityScore=liquidity,
        leverageScore=leverage,
        efficiencyScore=efficiency,
        cashFlowScore=cash_flow_score,
        strengths=identify_strengths(ratios, cash_flow),
        weaknesses=identify_weaknesses(ratios, cash_flow),
        recommendations=generate_recommendations(ratios, cash_flow),
        riskScore=risk_score,
        riskLevel=risk_level_for_score(risk_score),
    )

    logger.info(
        "Financial health analysis completed ticker=%s score=%s risk=%s",
        analysis.ticker,
        analysis.overallScore,
        analysis.riskLevel,
    )
    return analysis


# ---------- COMPARISON ----------


def compare_metric(value1: float, value2: float, lower_is_better: bool = False) -> MetricComparison:
    difference = value1 - value2

    if abs(difference) < TIE_THRESHOLD:
        winner = "tie"
    elif lower_is_better:
        winner = "company1" if value1 < value2 else "company2"
    else:
        winner = "company1" if value1 > value2 else "company2"

    return MetricComparison(
        company1Value=value1,
        company2Value=value2,
        difference=difference,
        percentageDifference=safe_divide(difference, value2) * 100,
        winner=winner,
    )


def _comparison_recommendation(ratios1: FinancialRatios, ratios2: FinancialRatios) -> str:
    score1 = (ratios1.grossProfitMargin + ratios1.netProfitMargin + ratios1.returnOnEquity) / 3
    score2 = (ratios2.grossProfitMargin + ratios2.netProfitMargin + ratios2.returnOnEquity) / 3

    if score1 > score2 * 1.1:
        return f"{ratios1.ticker} shows stronger overall financial performance"
    if score2 > score1 * 1.1:
        return f"{ratios2.ticker} shows stronger overall financial performance"
    return "Both companies show comparable financial performance"


def compare_companies(company1: CompanyFinancials, company2: CompanyFinancials) -> CompanyComparison:
    ratios1 = calculate_financial_ratios(company1.income_statement, company1.balance_sheet)
    ratios2 = calculate_financial_ratios(company2.income_statement, company2.balance_sheet)

    return CompanyComparison(
        company1=ratios1.ticker,
        company2=ratios2.ticker,
        profitabilityComparison=ProfitabilityComparison(
            grossProfitMargin=compare_metric(ratios1.grossProfitMargin, ratios2.grossProfitMargin),
            operatingMargin=compare_metric(ratios1.operatingMargin, ratios2.operatingMargin),
            netProfitMargin=compare_metric(ratios1.netProfitMargin, ratios2.netProfitMargin),
        ),
        liquidityComparison=LiquidityComparison(
            currentRatio=compare_metric(ratios1.currentRatio, ratios2.currentRatio),
            quickRatio=compare_metric(ratios1.quickRatio, ratios2.quickRatio),
        ),
        leverageComparison=LeverageComparison(
            debtToEquity=compare_metric(ratios1.debtToEquity, ratios2.debtToEquity, lower_is_better=True),
            debtToAssets=compare_metric(ratios1.debtToAssets, ratios2.debtToAssets, lower_is_better=True),
        ),
        recommendation=_comparison_recommendation(ratios1, ratios2),
    )
