"""
Budget lifecycle: create, update, delete, and the owner-scoped reads.

A budget slot is identified by (user, month, year). It is created once,
can have its figures updated in place, and is deleted for good; month and
year never change after creation.

Ownership mismatches are reported exactly like missing rows so callers
cannot discover other users' budgets.
"""

import logging

from sqlalchemy.exc import IntegrityError

from exceptions import ConflictError, NotFoundOrForbiddenError, ValidationError
from models import Budget, utcnow
from money import ZERO, quantize, sum_breakdown, to_decimal

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 9999


def parse_int(value, field, low=None, high=None):
    """
    Parse an integer field from a JSON body.

    Accepts ints and integral strings such as "3"; rejects booleans,
    fractional numbers and anything outside [low, high].
    """
    if value is None or value == '':
        raise ValidationError(f'{field} is required.', {field: 'missing'})
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer.', {field: value})
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f'{field} must be an integer.', {field: value})
        value = int(value)
    try:
        result = int(str(value).strip())
    except ValueError:
        raise ValidationError(f'{field} must be an integer.', {field: value})
    if (low is not None and result < low) or (high is not None and result > high):
        if high is None:
            bounds = f'at least {low}'
        elif low is None:
            bounds = f'at most {high}'
        else:
            bounds = f'between {low} and {high}'
        raise ValidationError(f'{field} must be {bounds}.', {field: result})
    return result


def _optional_money(value, field):
    amount = to_decimal(value, field=field)
    return None if amount is None else quantize(amount)


def find_owned_budget(session, user_id, budget_id):
    """Return the caller's budget or raise NotFoundOrForbiddenError."""
    budget = session.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
    if budget is None:
        logger.warning("Budget %s not found for user %s", budget_id, user_id)
        raise NotFoundOrForbiddenError('Budget not found.')
    return budget


class BudgetLifecycleManager:
    """Enforces the one-budget-per-period rule and owner-only mutations."""

    def __init__(self, store, reconciler):
        self.store = store
        self.reconciler = reconciler

    def _period_taken(self, user_id, month, year) -> bool:
        query = self.store.session.query(Budget.id).filter_by(user_id=user_id, month=month, year=year)
        return query.first() is not None

    def create_budget(self, user_id, payload) -> Budget:
        """
        Create the caller's budget for a month.

        Args:
            user_id: Owner of the new budget
            payload: Body with month, year, optional income / actualIncome and an
                expenses breakdown whose values are summed into planned_expenses

        Raises:
            ValidationError: month/year/amounts malformed
            ConflictError: a budget already exists for (user, month, year)
        """
        payload = payload or {}
        month = parse_int(payload.get('month'), 'month', 1, 12)
        year = parse_int(payload.get('year'), 'year', MIN_YEAR, MAX_YEAR)
        planned_income = _optional_money(payload.get('income'), 'income')
        recorded_income = _optional_money(payload.get('actualIncome'), 'actualIncome')

        expenses = payload.get('expenses')
        if expenses is None:
            expenses = {}
        elif not isinstance(expenses, dict):
            raise ValidationError('expenses must be an object of amounts.', {'expenses': type(expenses).__name__})
        planned_expenses = sum_breakdown(expenses)

        if self._period_taken(user_id, month, year):
            logger.warning("Duplicate budget for user %s period %02d/%d", user_id, month, year)
            raise ConflictError('A budget for this month already exists.', {'month': month, 'year': year})

        budget = Budget(
            user_id=user_id,
            month=month,
            year=year,
            planned_income=planned_income,
            recorded_income=recorded_income,
            planned_expenses=planned_expenses,
            recorded_expenses=ZERO,
        )
        try:
            with self.store.atomic() as session:
                session.add(budget)
        except IntegrityError as exc:
            # Lost the race against a concurrent create for the same period.
            logger.warning("Unique constraint rejected budget for user %s period %02d/%d", user_id, month, year)
            raise ConflictError(
                'A budget for this month already exists.',
                {'month': month, 'year': year},
                original_error=exc,
            ) from exc

        logger.info("Created budget %s for user %s (%02d/%d), planned expenses %s",
                    budget.id, user_id, month, year, planned_expenses)
        return budget

    def update_budget(self, user_id, budget_id, payload) -> Budget:
        """
        Overwrite recorded_income, planned_expenses and recorded_expenses.

        A missing recorded_income is stored as NULL; missing expense figures
        are stored as 0. The write is a single UPDATE filtered on both id and
        owner, so a foreign budget is never touched.
        """
        payload = payload or {}
        values = {
            'recorded_income': _optional_money(payload.get('recorded_income'), 'recorded_income'),
            'planned_expenses': quantize(to_decimal(payload.get('planned_expenses'), default=ZERO,
                                                    field='planned_expenses')),
            'recorded_expenses': quantize(to_decimal(payload.get('recorded_expenses'), default=ZERO,
                                                     field='recorded_expenses')),
            'updated_at': utcnow(),
        }
        with self.store.atomic() as session:
            updated = (
                session.query(Budget)
                .filter(Budget.id == budget_id, Budget.user_id == user_id)
                .update(values, synchronize_session=False)
            )
        if not updated:
            logger.warning("Update rejected: budget %s not found for user %s", budget_id, user_id)
            raise NotFoundOrForbiddenError('Budget not found.')

        logger.info("Updated budget %s for user %s", budget_id, user_id)
        return find_owned_budget(self.store.session, user_id, budget_id)

    def delete_budget(self, user_id, budget_id) -> None:
        """Delete the caller's budget together with its transactions."""
        budget = find_owned_budget(self.store.session, user_id, budget_id)
        transaction_count = len(budget.transactions)
        with self.store.atomic() as session:
            session.delete(budget)
        logger.info("Deleted budget %s for user %s (%d transactions removed)",
                    budget_id, user_id, transaction_count)

    def list_budgets(self, user_id) -> list:
        budgets = (
            self.store.session.query(Budget)
            .filter(Budget.user_id == user_id)
            .order_by(Budget.year.asc(), Budget.month.asc(), Budget.id.asc())
            .all()
        )
        return self.reconciler.views(budgets)

    def get_budget(self, user_id, budget_id):
        budget = find_owned_budget(self.store.session, user_id, budget_id)
        return self.reconciler.view(budget)
