"""Inventory blueprint: stock listing and dashboard summary."""
from flask import Blueprint, current_app, jsonify, request

from pos_client.models import Product
from pos_client.services.backend_client import get_backend_client
from pos_client.services.cache_service import get_cache
from pos_client.services.checkout_service import INVENTORY_CACHE_MODULE
from pos_client.services.inventory_service import filter_inventory, summarize_inventory
from pos_client.services.session_store import drain_feedback
from pos_client.utils.serializers import products_json, summary_json

inventory_bp = Blueprint('inventory', __name__, url_prefix='/inventory')


def _load_inventory():
    client = get_backend_client()
    rows = get_cache().memoize(
        INVENTORY_CACHE_MODULE,
        'all',
        lambda: [product.to_dict() for product in client.get_inventory()],
        current_app.config.get('CACHE_PRODUCTS_TTL')
    )
    return [Product.from_dict(row) for row in rows]


@inventory_bp.route('', methods=['GET'])
def inventory_list():
    query = request.args.get('q', '')
    products = filter_inventory(_load_inventory(), query)
    return jsonify({
        'status': 'success',
        'query': query,
        'count': len(products),
        'products': products_json(products),
        'feedback': drain_feedback()
    })


@inventory_bp.route('/summary', methods=['GET'])
def inventory_summary():
    summary = summarize_inventory(
        _load_inventory(),
        low_stock_threshold=current_app.config.get('LOW_STOCK_THRESHOLD', 5)
    )
    return jsonify({
        'status': 'success',
        'summary': summary_json(summary),
        'feedback': drain_feedback()
    })
