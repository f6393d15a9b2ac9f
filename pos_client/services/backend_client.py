"""HTTP client for the RTW PHP backend (inventory, purchases, receipts)."""
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import Flask, current_app

from pos_client.exceptions import BackendError, BackendRejectedError
from pos_client.models import Product, Sale
from pos_client.utils.json_extract import parse_json_body

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = 'Server returned an invalid response. Please contact support.'


class BackendClient:
    """Client for the PHP inventory backend."""
    
    def __init__(self, base_url: str, timeout: float = 10):
        """
        Initialize backend client.
        
        Args:
            base_url: Backend root, e.g. http://192.168.0.89/rtw_backend
            timeout: Seconds to wait for each request
        """
        if not base_url:
            raise ValueError("BACKEND_BASE_URL is required")
        
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }
    
    def _url(self, script: str) -> str:
        return f"{self.base_url}/{script}"
    
    def _decode(self, response: requests.Response, script: str) -> Dict[str, Any]:
        """
        Decode a backend envelope `{status, message?, data?}`.
        
        Raises:
            BackendError: body is not JSON (even after scanning for embedded JSON)
            BackendRejectedError: HTTP error status or status != "success"
        """
        try:
            body = parse_json_body(response.text)
        except ValueError:
            logger.error(
                f"[BACKEND] {script} returned non-JSON (HTTP {response.status_code}): "
                f"{(response.text or '')[:200]}"
            )
            raise BackendError(INVALID_RESPONSE_MESSAGE)
        
        if not isinstance(body, dict):
            logger.error(f"[BACKEND] {script} returned a JSON {type(body).__name__}, expected an object")
            raise BackendError(INVALID_RESPONSE_MESSAGE)
        
        if not response.ok or body.get('status') != 'success':
            message = body.get('message') or f'Request failed with HTTP {response.status_code}'
            logger.warning(f"[BACKEND] {script} rejected (HTTP {response.status_code}): {message}")
            raise BackendRejectedError(message, data=body.get('data'), http_status=response.status_code)
        
        return body
    
    def _get(self, script: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._url(script)
        try:
            response = requests.get(url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[BACKEND] GET {script} failed: {e}")
            raise BackendError() from e
        return self._decode(response, script)
    
    def _post(self, script: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self._url(script)
        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[BACKEND] POST {script} failed: {e}")
            raise BackendError() from e
        return self._decode(response, script)
    
    @staticmethod
    def _products(rows: Any, script: str) -> List[Product]:
        if not isinstance(rows, list):
            raise BackendError(INVALID_RESPONSE_MESSAGE)
        try:
            return [Product.from_dict(row) for row in rows]
        except ValueError as e:
            logger.error(f"[BACKEND] {script} returned a malformed product: {e}")
            raise BackendError(INVALID_RESPONSE_MESSAGE)
    
    def search_products(self, term: str = '') -> List[Product]:
        """
        Search in-stock products by name or description.
        
        Args:
            term: Search text; empty lists every product with stock
        
        Returns:
            List of Product snapshots
        """
        body = self._get('products.php', params={'search': term or ''})
        return self._products(body.get('data') or [], 'products.php')
    
    def get_inventory(self) -> List[Product]:
        """Full inventory listing (includes out-of-stock rows and category names)."""
        body = self._get('get_inventory.php')
        return self._products(body.get('data') or [], 'get_inventory.php')
    
    def product_by_qr(self, qr_code: str) -> Product:
        """
        Resolve a scanned key (product id or QR payload) to a product.
        
        Raises:
            BackendRejectedError: unknown product or out of stock
        """
        body = self._get('product_by_qr.php', params={'qr_code': str(qr_code)})
        data = body.get('data')
        if not data:
            raise BackendRejectedError('The scanned product is not in the database.')
        try:
            return Product.from_dict(data)
        except ValueError as e:
            logger.error(f"[BACKEND] product_by_qr.php returned a malformed product: {e}")
            raise BackendError(INVALID_RESPONSE_MESSAGE)
    
    def complete_purchase(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a finished sale.
        
        Args:
            payload: {items: [{product_id, quantity, price, cost_price}],
                      cash_tendered, total_amount, user_id}
        
        Returns:
            The `data` member of the backend response (may be empty)
        """
        logger.info(
            f"[BACKEND] Submitting purchase: {len(payload.get('items', []))} items, "
            f"total={payload.get('total_amount')}"
        )
        body = self._post('complete_purchase.php', payload)
        return body.get('data') or {}
    
    def get_transactions(self, user_id: int) -> List[Sale]:
        """Transaction history for a cashier."""
        body = self._get('get_transactions.php', params={'user_id': user_id})
        rows = body.get('data') or []
        if not isinstance(rows, list):
            raise BackendError(INVALID_RESPONSE_MESSAGE)
        try:
            return [Sale.from_dict(row) for row in rows]
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"[BACKEND] get_transactions.php returned a malformed sale: {e}")
            raise BackendError(INVALID_RESPONSE_MESSAGE)
    
    def update_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace the lines of a recorded sale.
        
        Args:
            payload: {transaction_id, items: [{product_id, quantity, price, discount}],
                      global_discount, cash_tendered, user_id, additional_payment?}
        
        Returns:
            The `data` member: balance_due, requires_additional_payment,
            total_amount, cash_tendered, change_due (all optional)
        """
        logger.info(
            f"[BACKEND] Updating transaction {payload.get('transaction_id')} "
            f"(additional_payment={payload.get('additional_payment', 0)})"
        )
        body = self._post('update_transaction.php', payload)
        return body.get('data') or {}


def init_backend(app: Flask) -> None:
    """Attach a BackendClient built from app config."""
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['backend_client'] = BackendClient(
        app.config['BACKEND_BASE_URL'],
        timeout=app.config.get('BACKEND_TIMEOUT', 10)
    )


def get_backend_client() -> BackendClient:
    """Get the backend client of the current app."""
    client = current_app.extensions.get('backend_client')
    if client is None:
        raise RuntimeError("Backend client not initialized.")
    return client
