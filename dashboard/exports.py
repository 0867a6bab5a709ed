from django.http import HttpResponse
from decimal import Decimal
import io

import openpyxl
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

HEADER_FILL = PatternFill(start_color='DDDDDD', end_color='DDDDDD', fill_type='solid')

TABLE_STYLE = TableStyle([
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, 0), 10),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
    ('BACKGROUND', (0, 1), (-1, -2), colors.beige),
    ('BACKGROUND', (0, -1), (-1, -1), colors.lightgrey),
    ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
    ('GRID', (0, 0), (-1, -1), 1, colors.black),
])


def _period(start_date, end_date):
    return f"Period: {start_date.strftime('%Y-%m-%d')} to {end_date.strftime('%Y-%m-%d')}"


def _write_title(ws, title, subtitle, last_column):
    ws['A1'] = title
    ws['A1'].font = Font(bold=True, size=16)
    ws['A2'] = subtitle
    ws.merge_cells(f'A1:{last_column}1')
    ws.merge_cells(f'A2:{last_column}2')


def _write_headers(ws, headers, row=4):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.font = Font(bold=True, size=12)
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')


def _autofit(ws):
    for column in ws.columns:
        max_length = 0
        column_letter = get_column_letter(column[0].column)
        for cell in column:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[column_letter].width = min(max_length + 2, 50)


def _xlsx_response(wb, filename):
    response = HttpResponse(content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    wb.save(response)
    return response


def _items_summary(order, limit=None):
    items = list(order.items.all())
    summary = [f"{item.quantity}x {item.menu_item_name}" for item in items[:limit]]
    if limit is not None and len(items) > limit:
        summary.append("...")
    return ", ".join(summary)


def daybook_excel(cafe, orders, start_date, end_date):
    """Every order in the range, one row each, with totals at the bottom"""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Day Book"

    _write_title(ws, f"{cafe.name} - Day Book Report", _period(start_date, end_date), 'L')
    headers = [
        'Date', 'Order No', 'Type', 'Table', 'Status', 'Items', 'Subtotal',
        'Tax', 'Fees', 'Discount', 'Total', 'Payment'
    ]
    _write_headers(ws, headers)

    row = 5
    total_sales = Decimal('0.00')
    total_tax = Decimal('0.00')
    for order in orders:
        ws.cell(row=row, column=1, value=order.created_at.strftime('%Y-%m-%d %H:%M'))
        ws.cell(row=row, column=2, value=order.order_number)
        ws.cell(row=row, column=3, value=order.get_order_type_display())
        ws.cell(row=row, column=4, value=order.table_number or '-')
        ws.cell(row=row, column=5, value=order.status)
        ws.cell(row=row, column=6, value=_items_summary(order))
        ws.cell(row=row, column=7, value=float(order.subtotal))
        ws.cell(row=row, column=8, value=float(order.tax))
        ws.cell(row=row, column=9, value=float(order.service_fee + order.delivery_fee))
        ws.cell(row=row, column=10, value=float(order.discount))
        ws.cell(row=row, column=11, value=float(order.total))
        ws.cell(row=row, column=12, value=order.payment_status)

        if order.status != 'CANCELLED':
            total_sales += order.total
            total_tax += order.tax
        row += 1

    row += 1
    bold = Font(bold=True, size=12)
    ws.cell(row=row, column=7, value="TOTALS:").font = bold
    ws.cell(row=row, column=8, value=float(total_tax)).font = bold
    ws.cell(row=row, column=11, value=float(total_sales)).font = bold

    _autofit(ws)
    return _xlsx_response(wb, f"daybook_{cafe.slug}_{start_date}_{end_date}.xlsx")


def inventory_excel(cafe, items):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Inventory"

    _write_title(ws, f"{cafe.name} - Inventory", f"Items: {len(items)}", 'K')
    headers = [
        'SKU', 'Name', 'Category', 'Unit', 'Current Stock', 'Minimum', 'Reorder Level',
        'Unit Cost', 'Stock Value', 'Expiry Date', 'Flags'
    ]
    _write_headers(ws, headers)

    low_fill = PatternFill(start_color='FFE0E0', end_color='FFE0E0', fill_type='solid')
    row = 5
    total_value = Decimal('0.00')
    for item in items:
        flags = [
            label for label, flag in [
                ('OUT', item.is_out_of_stock),
                ('LOW', item.is_low_stock and not item.is_out_of_stock),
                ('OVER', item.is_overstock),
                ('EXPIRED', item.is_expired),
                ('EXPIRING', item.is_expiring_soon),
            ] if flag
        ]
        values = [
            item.sku, item.name, item.category, item.unit, float(item.current_stock),
            float(item.minimum_stock), float(item.reorder_level), float(item.unit_cost),
            float(item.stock_value), item.expiry_date.isoformat() if item.expiry_date else '',
            ", ".join(flags),
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=value)
            if item.is_low_stock:
                cell.fill = low_fill
        total_value += item.stock_value
        row += 1

    row += 1
    ws.cell(row=row, column=8, value="TOTAL VALUE:").font = Font(bold=True, size=12)
    ws.cell(row=row, column=9, value=float(total_value)).font = Font(bold=True, size=12)

    _autofit(ws)
    return _xlsx_response(wb, f"inventory_{cafe.slug}.xlsx")


def _pdf_story(title, subtitle):
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=18,
        spaceAfter=30,
        alignment=1  # Center alignment
    )
    return styles, [
        Paragraph(title, title_style),
        Paragraph(subtitle, styles['Heading2']),
        Spacer(1, 20),
    ]


def _pdf_response(story, filename):
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    doc.build(story)
    buffer.seek(0)
    response = HttpResponse(buffer, content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def daybook_pdf(cafe, orders, start_date, end_date):
    _, story = _pdf_story(f"{cafe.name} - Day Book Report", _period(start_date, end_date))

    data = [['Date/Time', 'Order No', 'Type', 'Items', 'Total', 'Status']]
    total_sales = Decimal('0.00')
    for order in orders:
        data.append([
            order.created_at.strftime('%m/%d %H:%M'),
            order.order_number,
            order.get_order_type_display(),
            _items_summary(order, limit=2)[:30],  # Truncate long item lists
            f"${order.total:.2f}",
            order.status,
        ])
        if order.status != 'CANCELLED':
            total_sales += order.total
    data.append(['', '', '', '', f"Total: ${total_sales:.2f}", ''])

    table = Table(data)
    table.setStyle(TABLE_STYLE)
    story.append(table)
    return _pdf_response(story, f"daybook_{cafe.slug}_{start_date}_{end_date}.pdf")


def sales_report_pdf(cafe, report):
    """Render ``analytics.sales_analytics`` output as a PDF"""
    start_date, end_date = report['start_date'], report['end_date']
    summary = report['summary']
    styles, story = _pdf_story(f"{cafe.name} - Sales Report", _period(start_date, end_date))

    story.append(Paragraph(
        f"Orders: {summary['orders_count']} &nbsp; Revenue: ${summary['revenue']:.2f} &nbsp; "
        f"Average order: ${summary['avg_order_value']:.2f} &nbsp; Cancelled: {summary['cancelled_count']}",
        styles['Normal']
    ))
    story.append(Spacer(1, 12))

    # Daily sales
    data = [['Date', 'Orders', 'Revenue', 'Tax', 'Net Sales']]
    for day in report['daily']:
        data.append([
            day['date'].strftime('%Y-%m-%d'),
            str(day['orders_count']),
            f"${day['revenue']:.2f}",
            f"${day['tax']:.2f}",
            f"${day['revenue'] - day['tax']:.2f}",
        ])
    data.append([
        'TOTAL',
        str(summary['orders_count']),
        f"${summary['revenue']:.2f}",
        f"${summary['tax']:.2f}",
        f"${summary['revenue'] - summary['tax']:.2f}",
    ])
    table = Table(data)
    table.setStyle(TABLE_STYLE)
    story.append(table)
    story.append(Spacer(1, 20))

    # Top items
    story.append(Paragraph("Top Items", styles['Heading2']))
    data = [['Item', 'Quantity', 'Revenue']]
    for item in report['top_items']['by_quantity']:
        data.append([
            item['menu_item__name'][:40],
            str(item['total_quantity']),
            f"${item['total_revenue'] or 0:.2f}",
        ])
    data.append(['', '', ''])
    table = Table(data)
    table.setStyle(TABLE_STYLE)
    story.append(table)
    story.append(Spacer(1, 20))

    # Payment methods
    story.append(Paragraph("Payment Methods", styles['Heading2']))
    data = [['Method', 'Payments', 'Collected', 'Refunded']]
    for row in report['by_payment_method']:
        data.append([
            row['method'],
            str(row['count']),
            f"${row['total_amount'] or 0:.2f}",
            f"${row['refunded_amount'] or 0:.2f}",
        ])
    data.append(['', '', '', ''])
    table = Table(data)
    table.setStyle(TABLE_STYLE)
    story.append(table)

    return _pdf_response(story, f"sales_report_{cafe.slug}_{start_date}_{end_date}.pdf")
