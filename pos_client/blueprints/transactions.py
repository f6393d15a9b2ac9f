"""Transactions blueprint: sales history and editing of recorded sales."""
from flask import Blueprint, current_app, g, jsonify, request

from pos_client.blueprints.metrics import reconciliations_total
from pos_client.exceptions import NotFoundError, PosError, ValidationError
from pos_client.middleware import require_user
from pos_client.models import ReconciliationStatus
from pos_client.services import reconciliation_service
from pos_client.services.backend_client import get_backend_client
from pos_client.services.checkout_service import resolve_product
from pos_client.services.session_store import find_checkout_session, get_checkout_session
from pos_client.utils.number_format import to_int
from pos_client.utils.serializers import reconciliation_json, sale_json

transactions_bp = Blueprint('transactions', __name__, url_prefix='/transactions')


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _edit_response(state, status_code=200):
    return jsonify({
        'status': 'success',
        'edit': reconciliation_json(state.reconciliation),
        'feedback': state.drain_feedback()
    }), status_code


def _product_from_payload(state):
    raw = _payload().get('product_id')
    if raw in (None, ''):
        raise ValidationError('product_id is required.')
    return resolve_product(state, get_backend_client(), to_int(raw))


@transactions_bp.route('', methods=['GET'])
@require_user
def transactions_list():
    state = get_checkout_session()
    sales = reconciliation_service.fetch_transactions(state, get_backend_client(), g.user_id)
    return jsonify({
        'status': 'success',
        'transactions': [sale_json(sale) for sale in sales],
        'edit': reconciliation_json(state.reconciliation),
        'feedback': state.drain_feedback()
    })


@transactions_bp.route('/<int:transaction_id>/edit', methods=['POST'])
@require_user
def edit_begin(transaction_id):
    state = get_checkout_session()
    if not any(sale.id == transaction_id for sale in state.transactions):
        reconciliation_service.fetch_transactions(state, get_backend_client(), g.user_id)
    reconciliation_service.begin_edit(state, transaction_id)
    return _edit_response(state)


@transactions_bp.route('/edit', methods=['GET'])
def edit_view():
    state = find_checkout_session()
    if state is None:
        raise NotFoundError('No transaction is being edited.')
    reconciliation_service.get_active(state)
    return _edit_response(state)


@transactions_bp.route('/edit/units/<int:index>', methods=['POST'])
def edit_substitute_unit(index):
    state = get_checkout_session()
    rec = reconciliation_service.get_active(state)
    reconciliation_service.substitute_unit(rec, index, _product_from_payload(state))
    return _edit_response(state)


@transactions_bp.route('/edit/units/<int:index>', methods=['DELETE'])
def edit_remove_unit(index):
    state = get_checkout_session()
    rec = reconciliation_service.get_active(state)
    reconciliation_service.remove_unit(rec, index)
    return _edit_response(state)


@transactions_bp.route('/edit/units', methods=['POST'])
def edit_append_unit():
    state = get_checkout_session()
    rec = reconciliation_service.get_active(state)
    reconciliation_service.append_unit(rec, _product_from_payload(state))
    return _edit_response(state)


@transactions_bp.route('/edit/save', methods=['POST'])
@require_user
def edit_save():
    state = get_checkout_session()
    rec = reconciliation_service.get_active(state)
    try:
        reconciliation_service.save_edit(rec, get_backend_client(), g.user_id)
    except PosError:
        reconciliations_total.labels(outcome='failed' if rec.error else 'invalid').inc()
        raise

    if rec.status == ReconciliationStatus.ADDITIONAL_PAYMENT_REQUIRED:
        reconciliations_total.labels(outcome='additional_payment').inc()
        state.notify('warning', f'Additional payment required: {rec.balance_due}')
    else:
        reconciliations_total.labels(outcome='success').inc()
        state.notify('ack', 'Transaction updated')
    current_app.logger.info(f"Transaction {rec.sale.id} save by user {g.user_id}: {rec.status.value}")
    return _edit_response(state)


@transactions_bp.route('/edit/additional-payment', methods=['POST'])
@require_user
def edit_additional_payment():
    state = get_checkout_session()
    rec = reconciliation_service.get_active(state)
    try:
        reconciliation_service.submit_additional_payment(rec, get_backend_client(), _payload().get('amount'))
    except ValidationError:
        reconciliations_total.labels(outcome='invalid').inc()
        raise
    except PosError:
        reconciliations_total.labels(outcome='failed').inc()
        raise

    reconciliations_total.labels(outcome='success').inc()
    state.notify('ack', 'Transaction updated')
    return _edit_response(state)


@transactions_bp.route('/edit/cancel', methods=['POST'])
def edit_cancel():
    state = get_checkout_session()
    reconciliation_service.cancel_edit(state)
    return _edit_response(state)
