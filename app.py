import logging
import os
from functools import wraps

from flask import Blueprint, Flask, current_app, g, jsonify, request, session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash, check_password_hash

from budgeting.aggregator import TransactionAggregator
from budgeting.lifecycle import BudgetLifecycleManager
from budgeting.reconciler import BudgetReconciler
from budgeting.recording import TransactionRecorder
from config import Config, DEFAULT_SECRET_KEY, setup_logging
from exceptions import (
    AuthenticationError, BudgetAppError, ConflictError, StorageError, ValidationError,
)
from models import Category, User
from storage import LedgerStore, get_store

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

api = Blueprint('api', __name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    if not app.config.get('TESTING'):
        setup_logging(app.config)
        if app.config['SECRET_KEY'] == DEFAULT_SECRET_KEY:
            logger.warning("SECRET_KEY is not set; using the development default")

    store = LedgerStore()
    store.init_app(app)

    reconciler = BudgetReconciler(TransactionAggregator(store))
    app.extensions['budget_lifecycle'] = BudgetLifecycleManager(store, reconciler)
    app.extensions['transaction_recorder'] = TransactionRecorder(store)

    app.register_blueprint(api, url_prefix=app.config.get('API_PREFIX') or None)
    _register_error_handlers(app)
    return app


def _register_error_handlers(app):

    @app.errorhandler(BudgetAppError)
    def handle_app_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(error):
        get_store().session.rollback()
        logger.error("Unhandled database error on %s %s: %s", request.method, request.path, error, exc_info=True)
        wrapped = StorageError('Storage operation failed.', original_error=error)
        return jsonify(wrapped.to_dict()), wrapped.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'message': error.description}), error.code


def _lifecycle():
    return current_app.extensions['budget_lifecycle']


def _recorder():
    return current_app.extensions['transaction_recorder']


def _json_body():
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object.')
    return body


# ---------------------- Auth Helpers ----------------------
def current_user():
    uid = session.get('user_id')
    if uid:
        return get_store().session.get(User, uid)
    return None


def login_required(view_func):
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        user = current_user()
        if not user:
            raise AuthenticationError('Authentication required.')
        g.user = user
        return view_func(*args, **kwargs)
    return wrapped


def _clean_profile(body, partial=False):
    """Return cleaned name/email fields and a dict of per-field errors."""
    errors = {}
    cleaned = {}
    if not partial or 'name' in body:
        name = str(body.get('name') or '').strip()
        if not name:
            errors['name'] = 'Name must not be empty.'
        cleaned['name'] = name
    if not partial or 'email' in body:
        email = str(body.get('email') or '').lower().strip()
        if '@' not in email or email.startswith('@') or email.endswith('@'):
            errors['email'] = 'Enter a valid email address.'
        cleaned['email'] = email
    return cleaned, errors


# ---------------------- Routes: Auth ----------------------
@api.route('/register', methods=['POST'])
def register():
    body = _json_body()
    password = body.get('password') or ''
    fields, errors = _clean_profile(body)
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'
    if errors:
        raise ValidationError('Invalid user data.', errors)

    store = get_store()
    if store.session.query(User.id).filter_by(email=fields['email']).first():
        raise ConflictError('Email already registered.')
    user = User(name=fields['name'], email=fields['email'], password_hash=generate_password_hash(password))
    try:
        with store.atomic() as db_session:
            db_session.add(user)
    except IntegrityError as exc:
        raise ConflictError('Email already registered.', original_error=exc) from exc
    logger.info("Registered user %s", user.id)
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@api.route('/login', methods=['POST'])
def login():
    body = _json_body()
    email = str(body.get('email') or '').lower().strip()
    password = body.get('password') or ''
    user = get_store().session.query(User).filter_by(email=email).first()
    if not user or not isinstance(password, str) or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login attempt for %s", email or '<blank>')
        raise AuthenticationError('Invalid credentials.')
    session.clear()
    session['user_id'] = user.id
    return jsonify({'success': True, 'user': user.to_dict()})


@api.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out.'})


@api.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'user': g.user.to_dict()})


@api.route('/me', methods=['PUT'])
@login_required
def update_me():
    fields, errors = _clean_profile(_json_body(), partial=True)
    if errors:
        raise ValidationError('Invalid user data.', errors)
    user = g.user
    store = get_store()
    if 'email' in fields and fields['email'] != user.email:
        if store.session.query(User.id).filter(User.email == fields['email'], User.id != user.id).first():
            raise ConflictError('Email already registered.')
    try:
        with store.atomic():
            for key, value in fields.items():
                setattr(user, key, value)
    except IntegrityError as exc:
        raise ConflictError('Email already registered.', original_error=exc) from exc
    return jsonify({'success': True, 'user': user.to_dict()})


@api.route('/me', methods=['DELETE'])
@login_required
def delete_me():
    user_id = g.user.id
    with get_store().atomic() as db_session:
        db_session.delete(g.user)
    session.clear()
    logger.info("Deleted user %s and their budgets", user_id)
    return jsonify({'success': True, 'message': 'User deleted.'})


# ---------------------- Routes: Budgets ----------------------
@api.route('/budgets', methods=['POST'])
@login_required
def create_budget():
    budget = _lifecycle().create_budget(g.user.id, _json_body())
    return jsonify({'success': True, 'budget': budget.to_dict()}), 201


@api.route('/budgets', methods=['GET'])
@login_required
def list_budgets():
    return jsonify([view.to_dict() for view in _lifecycle().list_budgets(g.user.id)])


@api.route('/budgets/<int:budget_id>', methods=['GET'])
@login_required
def get_budget(budget_id):
    return jsonify(_lifecycle().get_budget(g.user.id, budget_id).to_dict())


@api.route('/budgets/<int:budget_id>', methods=['PUT'])
@login_required
def update_budget(budget_id):
    budget = _lifecycle().update_budget(g.user.id, budget_id, _json_body())
    return jsonify({'success': True, 'budget': budget.to_dict()})


@api.route('/budgets/<int:budget_id>', methods=['DELETE'])
@login_required
def delete_budget(budget_id):
    _lifecycle().delete_budget(g.user.id, budget_id)
    return jsonify({'success': True, 'message': 'Budget deleted.'})


# ---------------------- Routes: Transactions ----------------------
@api.route('/transactions', methods=['POST'])
@login_required
def add_transaction():
    tx = _recorder().record(g.user.id, _json_body())
    return jsonify({'success': True, 'transaction': tx.to_dict()}), 201


@api.route('/transactions/<int:budget_id>', methods=['GET'])
@login_required
def list_transactions(budget_id):
    return jsonify([tx.to_dict() for tx in _recorder().list_for_budget(g.user.id, budget_id)])


# ---------------------- Routes: Reference data ----------------------
@api.route('/categories', methods=['GET'])
def categories():
    rows = get_store().session.query(Category).order_by(Category.id.asc()).all()
    return jsonify([c.to_dict() for c in rows])


@api.route('/health', methods=['GET'])
def health():
    if get_store().health_check():
        return jsonify({'success': True, 'database': 'ok'})
    return jsonify({'success': False, 'database': 'unavailable'}), 503


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    app = create_app()
    try:
        app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
    finally:
        get_store(app).shutdown()
