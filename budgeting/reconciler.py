"""
Reconciled budget views.

A budget's stored figures and its transaction totals are merged by exactly
one function, ``reconcile``. The list and detail endpoints both go through
it, so they always agree:

    actual_income   = recorded_income  + income transactions
    actual_expenses = planned_expenses + expense transactions
    balance         = actual_income - actual_expenses

``recorded_expenses`` is reported alongside but never summed in.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from budgeting.aggregator import TransactionSums
from money import format_money, quantize


@dataclass(frozen=True)
class ReconciledBudget:
    id: int
    user_id: int
    month: int
    year: int
    planned_income: Optional[Decimal]
    recorded_income: Decimal
    actual_income: Decimal
    planned_expenses: Decimal
    recorded_expenses: Decimal
    actual_expenses: Decimal
    transaction_income_sum: Decimal
    transaction_expense_sum: Decimal
    balance: Decimal

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'month': self.month,
            'year': self.year,
            'planned_income': format_money(self.planned_income),
            'recorded_income': format_money(self.recorded_income),
            'actual_income': format_money(self.actual_income),
            'planned_expenses': format_money(self.planned_expenses),
            'recorded_expenses': format_money(self.recorded_expenses),
            'actual_expenses': format_money(self.actual_expenses),
            'transaction_income_sum': format_money(self.transaction_income_sum),
            'transaction_expense_sum': format_money(self.transaction_expense_sum),
            'balance': format_money(self.balance),
        }


def reconcile(budget, sums: Optional[TransactionSums] = None) -> ReconciledBudget:
    """Merge one budget row with its transaction totals."""
    sums = sums or TransactionSums()
    recorded_income = quantize(budget.recorded_income)
    planned_expenses = quantize(budget.planned_expenses)
    income_sum = quantize(sums.income)
    expense_sum = quantize(sums.expense)

    actual_income = recorded_income + income_sum
    actual_expenses = planned_expenses + expense_sum

    return ReconciledBudget(
        id=budget.id,
        user_id=budget.user_id,
        month=budget.month,
        year=budget.year,
        planned_income=None if budget.planned_income is None else quantize(budget.planned_income),
        recorded_income=recorded_income,
        actual_income=actual_income,
        planned_expenses=planned_expenses,
        recorded_expenses=quantize(budget.recorded_expenses),
        actual_expenses=actual_expenses,
        transaction_income_sum=income_sum,
        transaction_expense_sum=expense_sum,
        balance=actual_income - actual_expenses,
    )


def reconcile_many(budgets, sums_by_id) -> list:
    """Reconcile a sequence of budgets, keeping their order."""
    return [reconcile(budget, sums_by_id.get(budget.id, TransactionSums())) for budget in budgets]


class BudgetReconciler:
    """Fetches fresh transaction totals and reconciles budgets against them."""

    def __init__(self, aggregator):
        self.aggregator = aggregator

    def view(self, budget) -> ReconciledBudget:
        return reconcile(budget, self.aggregator.sums_for_budget(budget.id))

    def views(self, budgets) -> list:
        budgets = list(budgets)
        sums = self.aggregator.sums_for_budgets(b.id for b in budgets)
        return reconcile_many(budgets, sums)
