# fees/exports.py

"""Excel export of the arrears report."""

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from . import ledger
from .services import total_outstanding

ARREARS_HEADERS = [
    'Invoice Number', 'Student Number', 'Student Name', 'Due Date', 'Days Overdue', 'Status',
    'Due (LRD)', 'Paid (LRD)', 'Balance (LRD)',
    'Due (USD)', 'Paid (USD)', 'Balance (USD)',
]

MONEY_COLUMNS = range(7, 13)
MONEY_FORMAT = '#,##0.00'


def build_arrears_workbook(rows, as_of=None):
    """
    Workbook with one row per invoice in arrears plus a totals row.

    Args:
        rows: output of ``LedgerService.compute_arrears()``
        as_of: report date shown in the sheet title
    """
    wb = Workbook()
    ws = wb.active
    ws.title = f"Arrears {as_of:%Y-%m-%d}" if as_of else "Arrears"

    ws.append(ARREARS_HEADERS)
    for cell in ws[1]:
        cell.fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
        cell.font = Font(bold=True, color='FFFFFF')

    for row in rows:
        ws.append([
            row['invoice_number'],
            row.get('student_number', ''),
            row.get('student_name', ''),
            row['due_date'].strftime('%Y-%m-%d') if row['due_date'] else '',
            row['days_overdue'],
            row['status'],
            row['amount_due_lrd'], row['paid_lrd'], row['balance_lrd'],
            row['amount_due_usd'], row['paid_usd'], row['balance_usd'],
        ])

    ws.append([
        'TOTAL OUTSTANDING', '', '', '', '', '',
        '', '', total_outstanding(rows, ledger.CURRENCY_LRD),
        '', '', total_outstanding(rows, ledger.CURRENCY_USD),
    ])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)

    for row in ws.iter_rows(min_row=2, min_col=MONEY_COLUMNS.start, max_col=MONEY_COLUMNS.stop - 1):
        for cell in row:
            cell.number_format = MONEY_FORMAT

    ws.freeze_panes = 'A2'
    return wb
