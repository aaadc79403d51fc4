"""Recording and listing income/expense transactions under a budget."""

import logging

from budgeting.lifecycle import find_owned_budget, parse_int
from exceptions import ValidationError
from models import Transaction, TRANSACTION_TYPES
from money import ZERO, quantize, to_decimal

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('budget_id', 'type', 'amount', 'description')


class TransactionRecorder:

    def __init__(self, store):
        self.store = store

    @staticmethod
    def _missing_fields(payload):
        missing = []
        for field in REQUIRED_FIELDS:
            value = payload.get(field)
            # An empty description is allowed; the other fields must carry a value.
            if value is None or (field != 'description' and value == ''):
                missing.append(field)
        return missing

    def record(self, user_id, payload) -> Transaction:
        """
        Create a transaction under one of the caller's budgets.

        Raises:
            ValidationError: a field is missing, the type is unknown, or the amount
                is not a non-negative number
            NotFoundOrForbiddenError: the budget does not exist or is not the caller's
        """
        payload = payload or {}
        missing = self._missing_fields(payload)
        if missing:
            raise ValidationError('All fields are required.', {field: 'missing' for field in missing})

        ttype = str(payload['type']).strip().lower()
        if ttype not in TRANSACTION_TYPES:
            raise ValidationError('Type must be income or expense.', {'type': payload['type']})
        amount = to_decimal(payload['amount'], field='amount')
        if amount < ZERO:
            raise ValidationError('Amount must not be negative.', {'amount': str(amount)})
        description = payload['description']
        if not isinstance(description, str):
            raise ValidationError('Description must be text.', {'description': type(description).__name__})
        budget_id = parse_int(payload['budget_id'], 'budget_id', 1)

        budget = find_owned_budget(self.store.session, user_id, budget_id)
        tx = Transaction(
            budget_id=budget.id,
            user_id=budget.user_id,
            ttype=ttype,
            amount=quantize(amount),
            description=description.strip(),
        )
        with self.store.atomic() as session:
            session.add(tx)
        logger.info("Recorded %s transaction %s of %s on budget %s", ttype, tx.id, tx.amount, budget_id)
        return tx

    def list_for_budget(self, user_id, budget_id) -> list:
        budget = find_owned_budget(self.store.session, user_id, budget_id)
        return (
            self.store.session.query(Transaction)
            .filter(Transaction.budget_id == budget.id)
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
            .all()
        )
