"""
Unit tests for invoice PDF rendering.
"""

from datetime import datetime

import app.services.invoice_service as invoice_module
from app.services.invoice_service import render_invoice_pdf


def _invoice(salon, notes=None):
    return {
        'invoice_number': 'SALX-202610-0001',
        'created_at': datetime(2026, 10, 19, 10, 0).isoformat(),
        'payment_method': 'cash',
        'billed_by': 'Asha Reception',
        'customer': None,
        'notes': notes,
        'salon': salon,
        'lines': [{
            'item_name': 'Haircut', 'staff_name': 'Ravi Stylist',
            'quantity': 1, 'unit_price': 50000, 'line_total': 50000,
        }],
        'pricing': {
            'services_subtotal': 50000, 'products_subtotal': 0,
            'coupon_code': None, 'coupon_discount_amount': 0,
            'service_discount_amount': 0, 'product_discount_amount': 0,
            'taxable_amount': 50000, 'tax_percent': '18', 'tax_amount': 9000,
            'final_amount': 59000,
        },
    }


class TestRenderInvoicePdf:

    def test_header_fields_are_escaped(self, monkeypatch):
        texts = []
        real_paragraph = invoice_module.Paragraph

        def recording_paragraph(text, style, *args, **kwargs):
            texts.append(text)
            return real_paragraph(text, style, *args, **kwargs)

        monkeypatch.setattr(invoice_module, 'Paragraph', recording_paragraph)
        salon = {
            'name': '<Glow> & Spa',
            'address': 'Shop 4 <b> MG Road',
            'phone': '98450 <00000>',
            'email': 'a&b@glow.in',
            'gst_number': '29ABCDE1234F1Z5',
        }

        pdf = render_invoice_pdf(_invoice(salon, notes='Pay <later>'))

        assert pdf.getvalue().startswith(b'%PDF')
        assert '<b>&lt;Glow&gt; &amp; Spa</b>' in texts
        assert 'Shop 4 &lt;b&gt; MG Road' in texts
        assert 'Ph: 98450 &lt;00000&gt; | Email: a&amp;b@glow.in' in texts
        assert any('Pay &lt;later&gt;' in text for text in texts)

    def test_falls_back_to_business_name(self):
        pdf = render_invoice_pdf(_invoice({}), business_name='SalonX')
        assert pdf.getvalue().startswith(b'%PDF')
