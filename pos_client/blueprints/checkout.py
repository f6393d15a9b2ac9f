"""Checkout blueprint: cart, product search, scanning and purchase."""
from flask import Blueprint, current_app, g, jsonify, request

from pos_client.blueprints.metrics import purchases_total, scans_total
from pos_client.exceptions import (
    DuplicateScanError, NotFoundError, PosError, ScanInProgressError, ValidationError
)
from pos_client.middleware import require_user
from pos_client.models import SOURCE_MANUAL
from pos_client.services import cart_service, checkout_service
from pos_client.services.backend_client import get_backend_client
from pos_client.services.cache_service import get_cache
from pos_client.services.scan_service import handle_scan
from pos_client.services.session_store import discard_checkout_session, get_checkout_session
from pos_client.services.totals_service import calculate_totals
from pos_client.utils.number_format import money_float, to_int
from pos_client.utils.serializers import cart_json, line_json, products_json, product_json

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


def _payload() -> dict:
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _cart_response(state, status_code=200, **extra):
    body = {'status': 'success'}
    body.update(extra)
    body['cart'] = cart_json(state, calculate_totals(state))
    body['feedback'] = state.drain_feedback()
    return jsonify(body), status_code


@checkout_bp.route('/cart', methods=['GET'])
def cart_view():
    return _cart_response(get_checkout_session())


@checkout_bp.route('/session', methods=['DELETE'])
def session_discard():
    """Forget the checkout screen (logout)."""
    discard_checkout_session()
    return jsonify({'status': 'success', 'feedback': []})


@checkout_bp.route('/products', methods=['GET'])
def product_search():
    state = get_checkout_session()
    term = request.args.get('q', '')
    products = checkout_service.search_products(
        state,
        get_backend_client(),
        term,
        cache=get_cache(),
        ttl=current_app.config.get('CACHE_PRODUCTS_TTL')
    )
    return jsonify({
        'status': 'success',
        'query': state.last_search_term,
        'products': products_json(products),
        'feedback': state.drain_feedback()
    })


@checkout_bp.route('/products/<int:product_id>/select', methods=['POST'])
def product_select(product_id):
    state = get_checkout_session()
    product = cart_service.select_product(state, product_id)
    return _cart_response(state, selected=product_json(product))


@checkout_bp.route('/pick-qty', methods=['POST'])
def pick_quantity():
    state = get_checkout_session()
    cart_service.set_pick_quantity(state, _payload().get('quantity'))
    return _cart_response(state)


@checkout_bp.route('/cart/add', methods=['POST'])
def cart_add():
    """
    Manual add.

    With `product_id` the product comes from the last search results (or a
    backend lookup); without it the selected product is added.
    """
    state = get_checkout_session()
    data = _payload()

    if data.get('product_id') in (None, ''):
        line = cart_service.add_selected(state)
        return _cart_response(state, line=line_json(line))

    product = checkout_service.resolve_product(state, get_backend_client(), to_int(data.get('product_id')))

    quantity = data.get('quantity')
    override = to_int(quantity) if quantity not in (None, '') else None
    if override is not None and override < 1:
        raise ValidationError('Quantity must be at least 1.')

    line = cart_service.add_item(state, product, product.id, SOURCE_MANUAL, override)
    current_app.logger.info(f"Cart add: product {product.id} -> line {line.line_id} qty {line.quantity}")
    return _cart_response(state, line=line_json(line))


@checkout_bp.route('/scan', methods=['POST'])
def scan():
    state = get_checkout_session()
    data = str(_payload().get('data') or '').strip()
    if not data:
        raise ValidationError('Scan data is empty.')

    try:
        result = handle_scan(
            state,
            data,
            get_backend_client(),
            cooldown=current_app.config.get('SCAN_COOLDOWN_SECONDS', 1.0)
        )
    except ScanInProgressError:
        scans_total.labels(outcome='busy').inc()
        raise
    except DuplicateScanError:
        scans_total.labels(outcome='duplicate').inc()
        raise
    except NotFoundError:
        scans_total.labels(outcome='not_found').inc()
        raise
    except PosError:
        scans_total.labels(outcome='error').inc()
        raise

    scans_total.labels(outcome=result.kind).inc()
    return _cart_response(
        state,
        scan={
            'kind': result.kind,
            'added': [line_json(line) for line in result.lines],
            'skipped': result.skipped,
        }
    )


@checkout_bp.route('/cart/<int:line_id>/remove', methods=['POST'])
def cart_remove(line_id):
    state = get_checkout_session()
    cart_service.remove_item(state, line_id)
    return _cart_response(state)


@checkout_bp.route('/cart/<int:line_id>/quantity', methods=['POST'])
def cart_quantity(line_id):
    state = get_checkout_session()
    cart_service.set_line_quantity(state, line_id, _payload().get('quantity'))
    return _cart_response(state)


@checkout_bp.route('/cart/<int:line_id>/item-total', methods=['POST'])
def cart_item_total(line_id):
    state = get_checkout_session()
    cart_service.update_item_total(state, line_id, _payload().get('value', ''))
    return _cart_response(state)


@checkout_bp.route('/cart/<int:line_id>/sell-price', methods=['POST'])
def cart_sell_price(line_id):
    state = get_checkout_session()
    cart_service.update_sell_price(state, line_id, _payload().get('value', ''))
    return _cart_response(state)


@checkout_bp.route('/cart/clear', methods=['POST'])
def cart_clear():
    state = get_checkout_session()
    cart_service.clear_cart(state)
    return _cart_response(state)


@checkout_bp.route('/cash', methods=['POST'])
def cash_tendered():
    state = get_checkout_session()
    cart_service.set_cash_tendered(state, _payload().get('value', ''))
    return _cart_response(state)


@checkout_bp.route('/total-override', methods=['POST'])
def total_override():
    state = get_checkout_session()
    cart_service.set_total_override(state, _payload().get('value', ''))
    return _cart_response(state)


@checkout_bp.route('/complete', methods=['POST'])
@require_user
def complete():
    state = get_checkout_session()
    try:
        receipt = checkout_service.complete_purchase(
            state,
            get_backend_client(),
            g.user_id,
            cache=get_cache()
        )
    except ValidationError:
        purchases_total.labels(outcome='invalid').inc()
        raise
    except PosError:
        purchases_total.labels(outcome='failed').inc()
        raise

    purchases_total.labels(outcome='success').inc()
    current_app.logger.info(f"Purchase by user {g.user_id}: total {receipt['total']}")
    return _cart_response(
        state,
        receipt={
            'total': money_float(receipt['total']),
            'change': money_float(receipt['change']),
            'items': receipt['items'],
            'data': receipt['data'],
        },
        products=products_json(state.product_results)
    )
