"""
Billing blueprint - checkout, inventory deduction and invoices (JSON API).
"""
import logging
from flask import Blueprint, request, jsonify, current_app, g, send_file
from app.database import get_session
from app.middleware import require_salon
from app.exceptions import BusinessLogicError
from app.services.checkout_service import checkout
from app.services.inventory_service import apply_deduction, list_pending_bills
from app.services.invoice_service import get_invoice, render_invoice_pdf

logger = logging.getLogger(__name__)

billing_bp = Blueprint('billing', __name__, url_prefix='/billing')


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise BusinessLogicError('A JSON object body is required')
    return payload


@billing_bp.route('/checkout', methods=['POST'])
@require_salon
def checkout_cart():
    """
    Price, validate and commit a cart, then deduct its stock.

    The idempotency key comes from the X-Idempotency-Key header (or
    "idempotency_key" in the body). A repeated key returns the bill created
    by the first request with 200 instead of 201.
    """
    payload = _json_body()
    idempotency_key = request.headers.get('X-Idempotency-Key') or payload.get('idempotency_key')

    result = checkout(
        get_session(),
        g.salon_id,
        payload,
        idempotency_key,
        payment_methods=current_app.config['PAYMENT_METHODS'],
        invoice_prefix=current_app.config['INVOICE_PREFIX'],
        default_tax_percent=current_app.config['DEFAULT_TAX_PERCENT']
    )
    return jsonify(result.to_dict()), 201 if result.created else 200


@billing_bp.route('/deduct', methods=['POST'])
@require_salon
def deduct_inventory():
    """Apply (or re-apply) the stock deduction of a committed bill. Safe to repeat."""
    payload = _json_body()
    bill_id = payload.get('bill_id')
    if not isinstance(bill_id, int) or isinstance(bill_id, bool):
        raise BusinessLogicError('bill_id is required')

    result = apply_deduction(get_session(), g.salon_id, bill_id, payload.get('products'))
    logger.info(f"Deduct bill {bill_id}: {result.status.value}")
    data = result.to_dict()
    data['status'] = 'ok'
    return jsonify(data), 200


@billing_bp.route('/inventory/pending', methods=['GET'])
@require_salon
def pending_inventory():
    """Bills of the salon whose stock deduction is pending or partial."""
    pending = list_pending_bills(get_session(), salon_id=g.salon_id)
    return jsonify({'status': 'ok', 'bills': pending, 'count': len(pending)}), 200


@billing_bp.route('/invoice/<int:bill_id>', methods=['GET'])
@require_salon
def invoice_detail(bill_id):
    invoice = get_invoice(get_session(), g.salon_id, bill_id)
    return jsonify({'status': 'ok', 'invoice': invoice}), 200


@billing_bp.route('/invoice/<int:bill_id>/pdf', methods=['GET'])
@require_salon
def invoice_pdf(bill_id):
    invoice = get_invoice(get_session(), g.salon_id, bill_id)
    pdf_buffer = render_invoice_pdf(invoice, business_name=current_app.config.get('BUSINESS_NAME', 'SalonX'))
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f"{invoice['invoice_number']}.pdf"
    )
