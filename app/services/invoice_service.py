"""Invoice service - per-salon invoice numbering, invoice retrieval and PDF rendering."""
from datetime import datetime
from io import BytesIO
from xml.sax.saxutils import escape
from typing import Dict, Any, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models import Bill, InvoiceSequence, Salon
from app.exceptions import NotFoundError
from app.utils.formatters import money_inr, num_in, datetime_in

# Built-in PDF fonts have no rupee glyph
PDF_CURRENCY = 'Rs. '


def format_invoice_number(prefix: str, issued_at: datetime, seq: int) -> str:
    """SALX-202610-0001 style number: prefix, issue month, per-salon sequence (at least 4 digits)."""
    return f"{prefix}-{issued_at.strftime('%Y%m')}-{seq:04d}"


def next_invoice_number(session: Session, salon_id: int, prefix: str,
                        issued_at: Optional[datetime] = None) -> Tuple[int, str]:
    """
    Reserve the next invoice number of a salon inside the caller's transaction.

    The counter row is incremented with an UPDATE, which holds its row lock
    until the caller commits; a rollback returns the number, so committed
    bills stay contiguous. Does not commit.
    """
    issued_at = issued_at or datetime.now()
    result = session.execute(
        update(InvoiceSequence)
        .where(InvoiceSequence.salon_id == salon_id)
        .values(last_value=InvoiceSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # First bill of the salon; a concurrent first insert fails on the primary key
        seq = 1
        session.add(InvoiceSequence(salon_id=salon_id, last_value=seq))
        session.flush()
    else:
        seq = int(session.query(InvoiceSequence.last_value).filter(
            InvoiceSequence.salon_id == salon_id
        ).scalar())
    return seq, format_invoice_number(prefix, issued_at, seq)


def get_bill(session: Session, salon_id: int, bill_id: int) -> Bill:
    bill = session.query(Bill).filter(Bill.id == bill_id, Bill.salon_id == salon_id).first()
    if not bill:
        raise NotFoundError(f'Invoice {bill_id} not found')
    return bill


def find_bill_by_key(session: Session, salon_id: int, idempotency_key: str) -> Optional[Bill]:
    return session.query(Bill).filter(
        Bill.salon_id == salon_id,
        Bill.idempotency_key == idempotency_key
    ).first()


def get_invoice(session: Session, salon_id: int, bill_id: int) -> Dict[str, Any]:
    """Frozen bill with its lines, customer/biller names and the salon header."""
    bill = get_bill(session, salon_id, bill_id)
    salon = session.get(Salon, salon_id)

    data = bill.to_dict()
    data['salon'] = salon.header_info() if salon else {}
    data['billed_by'] = bill.biller.name if bill.biller else None
    data['customer'] = {
        'id': bill.customer.id,
        'name': bill.customer.name,
        'phone': bill.customer.phone,
    } if bill.customer else None
    staff_names = {line.staff_id: line.staff.name for line in bill.lines if line.staff is not None}
    for line in data['lines']:
        line['staff_name'] = staff_names.get(line['staff_id'])
    return data


def _money(value) -> str:
    return money_inr(value, symbol=PDF_CURRENCY)


def render_invoice_pdf(invoice: Dict[str, Any], business_name: str = 'SalonX') -> BytesIO:
    """Render an invoice (as returned by get_invoice) to a PDF buffer."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'InvoiceTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'InvoiceHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Salon header
    salon = invoice.get('salon') or {}
    elements.append(Paragraph("TAX INVOICE", title_style))
    elements.append(Paragraph(f"<b>{escape(salon.get('name') or business_name)}</b>", header_style))
    if salon.get('address'):
        elements.append(Paragraph(escape(salon['address']), header_style))

    contact_parts = []
    if salon.get('phone'):
        contact_parts.append(f"Ph: {escape(salon['phone'])}")
    if salon.get('email'):
        contact_parts.append(f"Email: {escape(salon['email'])}")
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))
    if salon.get('gst_number'):
        elements.append(Paragraph(f"GSTIN: {escape(salon['gst_number'])}", header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Invoice metadata
    created_at = invoice.get('created_at')
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    info_data = [
        ['Invoice No:', invoice['invoice_number']],
        ['Date:', datetime_in(created_at)],
        ['Payment:', (invoice.get('payment_method') or '').upper()],
    ]
    if invoice.get('billed_by'):
        info_data.append(['Billed by:', invoice['billed_by']])
    customer = invoice.get('customer')
    if customer:
        info_data.append(['Customer:', customer['name']])
        if customer.get('phone'):
            info_data.append(['Phone:', customer['phone']])

    info_table = Table(info_data, colWidths=[2*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Lines
    table_data = [['Item', 'Staff', 'Qty', 'Rate', 'Amount']]
    for line in invoice['lines']:
        table_data.append([
            line['item_name'],
            line.get('staff_name') or '-',
            num_in(line['quantity']),
            _money(line['unit_price']),
            _money(line['line_total']),
        ])

    items_table = Table(table_data, colWidths=[2.6*inch, 1.3*inch, 0.6*inch, 1.1*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (2, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (4, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    pricing = invoice['pricing']
    totals = [
        ['Services:', _money(pricing['services_subtotal'])],
        ['Products:', _money(pricing['products_subtotal'])],
    ]
    if pricing.get('coupon_code'):
        totals.append([f"Coupon ({pricing['coupon_code']}):", f"-{_money(pricing['coupon_discount_amount'])}"])
    else:
        if pricing['service_discount_amount']:
            totals.append(['Service discount:', f"-{_money(pricing['service_discount_amount'])}"])
        if pricing['product_discount_amount']:
            totals.append(['Product discount:', f"-{_money(pricing['product_discount_amount'])}"])
    totals.append(['Taxable amount:', _money(pricing['taxable_amount'])])
    totals.append([f"GST ({pricing['tax_percent']}%):", _money(pricing['tax_amount'])])

    totals_table = Table(totals, colWidths=[5.3*inch, 1.4*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(totals_table)

    total_table = Table([['TOTAL:', _money(pricing['final_amount'])]], colWidths=[5.3*inch, 1.4*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 14),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(total_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle(
        'Footer', parent=styles['Normal'], fontSize=9,
        textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER
    )
    footer_text = "Thank you for visiting!"
    if invoice.get('notes'):
        footer_text += f"<br/><br/><b>Notes:</b> {escape(invoice['notes'])}"
    elements.append(Paragraph(footer_text, footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
