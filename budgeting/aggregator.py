"""
Per-budget transaction totals.

Sums are computed in SQL on every call; nothing is cached between requests.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, case

from models import Transaction, INCOME, EXPENSE
from money import ZERO, quantize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionSums:
    """Income and expense totals of one budget's transactions."""
    income: Decimal = ZERO
    expense: Decimal = ZERO


class TransactionAggregator:

    def __init__(self, store):
        self.store = store

    def _sum_columns(self):
        income = func.coalesce(func.sum(case((Transaction.ttype == INCOME, Transaction.amount), else_=0)), 0)
        expense = func.coalesce(func.sum(case((Transaction.ttype == EXPENSE, Transaction.amount), else_=0)), 0)
        return income.label('income'), expense.label('expense')

    @staticmethod
    def _as_decimal(value) -> Decimal:
        # SQLite can hand back floats for SUM over NUMERIC.
        if value is None:
            return ZERO
        if isinstance(value, float):
            value = repr(value)
        return quantize(Decimal(value))

    def _to_sums(self, income, expense) -> TransactionSums:
        return TransactionSums(income=self._as_decimal(income), expense=self._as_decimal(expense))

    def sums_for_budget(self, budget_id) -> TransactionSums:
        """Totals for a single budget; zero when it has no transactions."""
        row = (
            self.store.session.query(*self._sum_columns())
            .filter(Transaction.budget_id == budget_id)
            .one()
        )
        return self._to_sums(row.income, row.expense)

    def sums_for_budgets(self, budget_ids) -> dict:
        """
        Totals for many budgets in one grouped query.

        Args:
            budget_ids: Iterable of budget ids

        Returns:
            Mapping of every requested id to its TransactionSums; ids without
            transactions map to zero totals.
        """
        ids = list(dict.fromkeys(budget_ids))
        if not ids:
            return {}
        rows = (
            self.store.session.query(Transaction.budget_id, *self._sum_columns())
            .filter(Transaction.budget_id.in_(ids))
            .group_by(Transaction.budget_id)
            .all()
        )
        sums = {budget_id: TransactionSums() for budget_id in ids}
        for row in rows:
            sums[row.budget_id] = self._to_sums(row.income, row.expense)
        logger.debug("Aggregated transactions for %d budgets (%d with activity)", len(ids), len(rows))
        return sums
