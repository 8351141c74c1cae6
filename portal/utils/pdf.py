from io import BytesIO
from datetime import datetime
from xml.sax.saxutils import escape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image
from portal.utils.barcode import po_barcode_png


def generate_bin_card_pdf(bin_card, factory):
    """
    Generate a printable bin card for a work order's material

    Args:
        bin_card: BinCard object
        factory: Factory the card belongs to (name and low stock threshold)

    Returns:
        BytesIO buffer containing the PDF
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4,
                            leftMargin=1.5*cm, rightMargin=1.5*cm,
                            topMargin=1.5*cm, bottomMargin=1.5*cm)

    styles = getSampleStyleSheet()
    story = []

    po_number = bin_card.work_order.po_number if bin_card.work_order else ''

    # Title
    title_style = ParagraphStyle(
        'Title',
        parent=styles['Heading1'],
        fontSize=18,
        alignment=1,  # Center
        spaceAfter=6
    )
    story.append(Paragraph(escape(factory.name), styles['Normal']))
    story.append(Paragraph('BIN CARD', title_style))

    # PO barcode
    barcode_png = po_barcode_png(po_number) if po_number else None
    if barcode_png:
        image = Image(barcode_png, width=7*cm, height=2.2*cm)
        image.hAlign = 'CENTER'
        story.append(image)
    story.append(Spacer(1, 10))

    # Header
    header_data = [
        ['PO Number:', po_number or '-', 'Buyer:', bin_card.buyer or '-'],
        ['Style:', bin_card.style or '-', 'Color:', bin_card.color or '-'],
        ['Supplier:', bin_card.supplier_name or '-', 'Construction:', bin_card.construction or '-'],
        ['Width:', bin_card.width or '-', 'Package Qty:', bin_card.package_qty or '-'],
        ['Description:', Paragraph(escape(bin_card.description or '-'), styles['Normal']), 'Prepared by:',
         bin_card.prepared_by or '-'],
    ]
    header_table = Table(header_data, colWidths=[2.8*cm, 6*cm, 2.8*cm, 6*cm])
    header_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
    ]))
    story.append(header_table)
    story.append(Spacer(1, 15))

    # Transactions
    rows = [['Date', 'Receive', 'Total Receive', 'Issue', 'Balance', 'Remarks']]
    low_rows = []
    for index, txn in enumerate(bin_card.ordered_transactions(), start=1):
        rows.append([
            txn.transaction_date.strftime('%d/%m/%Y') if txn.transaction_date else '-',
            str(txn.receive_qty or 0),
            str(txn.ttl_receive or 0),
            str(txn.issue_qty or 0),
            str(txn.balance_qty or 0),
            Paragraph(escape(txn.remarks or ''), styles['Normal']),
        ])
        if txn.balance_qty < factory.low_stock_threshold:
            low_rows.append(index)

    table_style = [
        # Header
        ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),

        # Body
        ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
        ('ALIGN', (1, 1), (4, -1), 'RIGHT'),

        # Grid
        ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
    ]
    for row in low_rows:
        table_style.append(('TEXTCOLOR', (4, row), (4, row), colors.red))

    txn_table = Table(rows, colWidths=[2.6*cm, 2.4*cm, 2.8*cm, 2.4*cm, 2.4*cm, 5.4*cm], repeatRows=1)
    txn_table.setStyle(TableStyle(table_style))
    story.append(txn_table)

    story.append(Spacer(1, 10))
    total_style = ParagraphStyle('Total', parent=styles['Normal'], fontSize=10, alignment=2)
    story.append(Paragraph(f'Total received: {bin_card.total_received}', total_style))
    story.append(Paragraph(f'Total issued: {bin_card.total_issued}', total_style))
    story.append(Paragraph(f'<b>Balance: {bin_card.current_balance}</b>', total_style))

    story.append(Spacer(1, 20))
    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=8)
    story.append(Paragraph(f'<i>Printed {datetime.now().strftime("%d/%m/%Y %H:%M")}</i>', footer_style))

    # Build PDF
    doc.build(story)
    buffer.seek(0)
    return buffer
