"""
Excel export service for capital call data
"""
from typing import Any, List
from datetime import datetime
import io
import logging
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from app.exceptions import NotFoundError
from app.services.schedule_generator import to_decimal
from app.services.storage import Storage

logger = logging.getLogger(__name__)

MONEY_FORMAT = '$#,##0.00'


class CapitalCallExcelExporter:
    """Export a fund's allocations, capital calls and payments to Excel"""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def export_fund(self, fund_id: int) -> io.BytesIO:
        """
        Export capital call data for a fund

        Returns:
            BytesIO object containing Excel file

        Raises:
            NotFoundError: Fund does not exist
        """
        fund = await self.storage.get_fund(fund_id)
        if not fund:
            raise NotFoundError("Fund", fund_id)

        allocations = await self.storage.get_allocations_by_fund(fund_id)
        calls = []
        for allocation in allocations:
            calls.extend(await self.storage.get_capital_calls_by_allocation(allocation.id))
        calls.sort(key=lambda c: (c.call_date, c.id))

        payments = []
        for call in calls:
            payments.extend(await self.storage.get_payments_for_capital_call(call.id))

        wb = Workbook()

        self._add_overview_sheet(wb, fund, allocations, calls)
        self._add_allocations_sheet(wb, allocations)
        self._add_capital_calls_sheet(wb, calls)
        self._add_payments_sheet(wb, payments)

        # Remove default sheet
        if 'Sheet' in wb.sheetnames:
            wb.remove(wb['Sheet'])

        excel_file = io.BytesIO()
        wb.save(excel_file)
        excel_file.seek(0)

        logger.info(
            f"Exported fund {fund_id}: {len(allocations)} allocations, "
            f"{len(calls)} capital calls, {len(payments)} payments"
        )
        return excel_file

    def _add_overview_sheet(self, wb: Workbook, fund: Any, allocations: List[Any], calls: List[Any]):
        """Add fund overview sheet"""
        ws = wb.create_sheet("Overview", 0)

        ws['A1'] = "Capital Call Overview"
        ws['A1'].font = Font(size=16, bold=True)

        total_called = sum(float(to_decimal(c.call_amount)) for c in calls)
        total_paid = sum(float(to_decimal(c.paid_amount)) for c in calls)
        total_outstanding = sum(float(to_decimal(c.outstanding_amount)) for c in calls)

        row = 3
        details = [
            ("Fund Name:", fund.name, None),
            ("Vintage Year:", fund.vintage_year or "N/A", None),
            ("Allocations:", len(allocations), None),
            ("Capital Calls:", len(calls), None),
            ("Total Called:", total_called, MONEY_FORMAT),
            ("Total Paid:", total_paid, MONEY_FORMAT),
            ("Total Outstanding:", total_outstanding, MONEY_FORMAT),
        ]

        for label, value, number_format in details:
            ws[f'A{row}'] = label
            ws[f'A{row}'].font = Font(bold=True)
            ws[f'B{row}'] = value
            if number_format:
                ws[f'B{row}'].number_format = number_format
            row += 1

        row += 1
        ws[f'A{row}'] = "Generated:"
        ws[f'A{row}'].font = Font(italic=True)
        ws[f'B{row}'] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        ws[f'B{row}'].font = Font(italic=True)

        ws.column_dimensions['A'].width = 20
        ws.column_dimensions['B'].width = 40

    def _add_allocations_sheet(self, wb: Workbook, allocations: List[Any]):
        """Add allocations sheet"""
        ws = wb.create_sheet("Allocations")

        headers = ["ID", "Deal", "Date", "Amount", "Type", "Security", "Status", "Weight %"]
        self._write_header_row(ws, headers, 1)

        row = 2
        for allocation in allocations:
            ws[f'A{row}'] = allocation.id
            ws[f'B{row}'] = allocation.deal_id
            ws[f'C{row}'] = allocation.allocation_date.strftime("%Y-%m-%d")
            ws[f'D{row}'] = float(to_decimal(allocation.amount))
            if allocation.amount_type == "dollar":
                ws[f'D{row}'].number_format = MONEY_FORMAT
            ws[f'E{row}'] = allocation.amount_type
            ws[f'F{row}'] = allocation.security_type or ""
            ws[f'G{row}'] = allocation.status
            ws[f'H{row}'] = float(to_decimal(allocation.portfolio_weight))
            ws[f'H{row}'].number_format = '0.00'
            row += 1

        for column, width in zip("ABCDEFGH", [8, 10, 12, 15, 12, 25, 18, 10]):
            ws.column_dimensions[column].width = width

    def _add_capital_calls_sheet(self, wb: Workbook, calls: List[Any]):
        """Add capital calls sheet"""
        ws = wb.create_sheet("Capital Calls")

        headers = ["ID", "Allocation", "Call Date", "Due Date", "Amount", "Paid", "Outstanding", "Status", "Notes"]
        self._write_header_row(ws, headers, 1)

        row = 2
        totals = [0.0, 0.0, 0.0]
        for call in calls:
            amounts = [
                float(to_decimal(call.call_amount)),
                float(to_decimal(call.paid_amount)),
                float(to_decimal(call.outstanding_amount)),
            ]
            ws[f'A{row}'] = call.id
            ws[f'B{row}'] = call.allocation_id
            ws[f'C{row}'] = call.call_date.strftime("%Y-%m-%d")
            ws[f'D{row}'] = call.due_date.strftime("%Y-%m-%d")
            for column, value in zip("EFG", amounts):
                ws[f'{column}{row}'] = value
                ws[f'{column}{row}'].number_format = MONEY_FORMAT
            ws[f'H{row}'] = call.status
            ws[f'I{row}'] = call.notes or ""
            totals = [t + a for t, a in zip(totals, amounts)]
            row += 1

        # Total row
        ws[f'A{row}'] = "TOTAL"
        ws[f'A{row}'].font = Font(bold=True)
        for column, value in zip("EFG", totals):
            ws[f'{column}{row}'] = value
            ws[f'{column}{row}'].number_format = MONEY_FORMAT
            ws[f'{column}{row}'].font = Font(bold=True)
            ws[f'{column}{row}'].fill = PatternFill(start_color="FFFF00", fill_type="solid")

        for column, width in zip("ABCDEFGHI", [8, 12, 12, 12, 15, 15, 15, 16, 40]):
            ws.column_dimensions[column].width = width

    def _add_payments_sheet(self, wb: Workbook, payments: List[Any]):
        """Add payments sheet"""
        ws = wb.create_sheet("Payments")

        headers = ["ID", "Capital Call", "Date", "Type", "Amount", "Notes"]
        self._write_header_row(ws, headers, 1)

        row = 2
        total = 0.0
        for payment in payments:
            ws[f'A{row}'] = payment.id
            ws[f'B{row}'] = payment.capital_call_id
            ws[f'C{row}'] = payment.payment_date.strftime("%Y-%m-%d")
            ws[f'D{row}'] = payment.payment_type
            ws[f'E{row}'] = float(to_decimal(payment.amount))
            ws[f'E{row}'].number_format = MONEY_FORMAT
            ws[f'F{row}'] = payment.notes or ""
            total += float(to_decimal(payment.amount))
            row += 1

        ws[f'A{row}'] = "TOTAL"
        ws[f'A{row}'].font = Font(bold=True)
        ws[f'E{row}'] = total
        ws[f'E{row}'].number_format = MONEY_FORMAT
        ws[f'E{row}'].font = Font(bold=True)

        for column, width in zip("ABCDEF", [8, 14, 12, 10, 15, 40]):
            ws.column_dimensions[column].width = width

    def _write_header_row(self, ws, headers: List[str], row: int):
        """Write styled header row"""
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col)
            cell.value = header
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = PatternFill(start_color="4472C4", fill_type="solid")
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = Border(
                bottom=Side(style='thin'),
                top=Side(style='thin'),
                left=Side(style='thin'),
                right=Side(style='thin')
            )
