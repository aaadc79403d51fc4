from datetime import UTC, datetime

from flask_sqlalchemy import SQLAlchemy

from money import format_money

db = SQLAlchemy()

INCOME = 'income'
EXPENSE = 'expense'
TRANSACTION_TYPES = (INCOME, EXPENSE)

DEFAULT_CATEGORIES = (
    'Housing', 'Food', 'Transportation', 'Utilities',
    'Health', 'Entertainment', 'Savings', 'Other',
)


def utcnow():
    return datetime.now(UTC)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    budgets = db.relationship('Budget', backref='user', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Budget(db.Model):
    """One user's plan for a single month; at most one per (user, month, year)."""
    __tablename__ = 'budgets'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'month', 'year', name='uq_budgets_user_period'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    planned_income = db.Column(db.Numeric(12, 2), nullable=True)
    recorded_income = db.Column(db.Numeric(12, 2), nullable=True)  # entered directly, before transactions
    planned_expenses = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    recorded_expenses = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    transactions = db.relationship('Transaction', backref='budget', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'month': self.month,
            'year': self.year,
            'planned_income': format_money(self.planned_income),
            'recorded_income': format_money(self.recorded_income),
            'planned_expenses': format_money(self.planned_expenses),
            'recorded_expenses': format_money(self.recorded_expenses),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Transaction(db.Model):
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    budget_id = db.Column(db.Integer, db.ForeignKey('budgets.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    ttype = db.Column(db.String(20), nullable=False)  # 'income' or 'expense'
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'budget_id': self.budget_id,
            'user_id': self.user_id,
            'type': self.ttype,
            'amount': format_money(self.amount),
            'description': self.description or '',
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}
