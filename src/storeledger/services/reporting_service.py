from __future__ import annotations

from dataclasses import dataclass

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo


@dataclass(frozen=True)
class DailySummary:
    day: str
    sales_count: int
    voided_count: int
    revenue: float
    vat_collected: float
    by_method: dict[str, float]


@dataclass(frozen=True)
class StockValuation:
    product_count: int
    units: int
    cost_value: float
    retail_value: float


def _money(cell) -> None:
    cell.number_format = "#,##0.00"


def _bold_row(ws, r: int) -> None:
    for c in ws[r]:
        c.font = Font(bold=True)


def _set_widths(ws, widths: dict[str, int]) -> None:
    for col, w in widths.items():
        ws.column_dimensions[col].width = w


def _add_table(ws, name: str, start_row: int, end_row: int, end_col: int) -> None:
    ref = f"A{start_row}:{get_column_letter(end_col)}{end_row}"
    tab = Table(displayName=name, ref=ref)
    tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
    ws.add_table(tab)


class ReportingService:
    def __init__(self, store):
        self.store = store

    def daily_summary(self, day_iso: str) -> DailySummary:
        start, end = f"{day_iso} 00:00:00", f"{day_iso} 23:59:59"
        sales = self.store.list_sales(start, end)
        completed = [s for s in sales if s.status == "completed"]
        return DailySummary(
            day=day_iso,
            sales_count=len(completed),
            voided_count=sum(1 for s in sales if s.status == "voided"),
            revenue=sum(s.total for s in completed),
            vat_collected=sum(s.vat_amount for s in completed),
            by_method={method: total for method, _count, total in self.store.sales_totals_by_method(start, end)},
        )

    def stock_valuation(self) -> StockValuation:
        products = self.store.list_products()
        return StockValuation(
            product_count=len(products),
            units=sum(p.stock_quantity for p in products),
            cost_value=sum(p.stock_quantity * p.purchase_price for p in products),
            retail_value=sum(p.stock_quantity * p.sale_price for p in products),
        )

    def export_sales_report_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        wb = Workbook()
        sales = self.store.list_sales(start_iso, end_iso)
        completed = [s for s in sales if s.status == "completed"]

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Sales count", len(completed), False),
            ("Voided sales", len(sales) - len(completed), False),
            ("Subtotal", sum(s.subtotal for s in completed), True),
            ("Discounts", sum(s.discount_amount for s in completed), True),
            ("VAT collected", sum(s.vat_amount for s in completed), True),
            ("Total", sum(s.total for s in completed), True),
        ]
        for i, (label, val, is_money) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if is_money:
                _money(ws[f"B{r}"])
        _set_widths(ws, {"A": 24, "B": 34})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Invoice", "Date", "Status", "Method",
            "Product", "Barcode", "Qty", "Unit Price", "Discount", "VAT %", "VAT", "Line Total",
        ])
        _bold_row(ws2, 1)
        for s in sales:
            for it in self.store.list_sale_items(s.id):
                ws2.append([
                    s.invoice_number, s.sale_date, s.status, s.payment_method,
                    it.product_name, it.barcode or "", it.quantity, it.unit_price, it.discount,
                    it.vat_rate, it.vat_amount, it.total,
                ])
                r = ws2.max_row
                for col in ("H", "I", "K", "L"):
                    _money(ws2[f"{col}{r}"])
        ws2.freeze_panes = "A2"
        _set_widths(ws2, {"A": 14, "B": 20, "C": 11, "D": 14, "E": 30, "F": 16, "G": 6,
                          "H": 13, "I": 11, "J": 7, "K": 11, "L": 13})
        if ws2.max_row >= 2:
            _add_table(ws2, "SalesDetail", 1, ws2.max_row, 12)

        wb.save(path)

    def export_journal_excel(self, path: str, start_iso: str | None = None, end_iso: str | None = None) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Journal"
        ws.append(["Date", "Account", "Debit", "Credit", "Description", "Reference", "Reference ID"])
        _bold_row(ws, 1)
        for e in self.store.list_journal(start_iso=start_iso, end_iso=end_iso):
            ws.append([e.entry_date, e.account_code, e.debit, e.credit, e.description or "",
                       e.reference_type or "", e.reference_id])
            _money(ws[f"C{ws.max_row}"])
            _money(ws[f"D{ws.max_row}"])
        ws.freeze_panes = "A2"
        _set_widths(ws, {"A": 20, "B": 10, "C": 14, "D": 14, "E": 36, "F": 12, "G": 12})
        if ws.max_row >= 2:
            _add_table(ws, "Journal", 1, ws.max_row, 7)

        ws2 = wb.create_sheet("Accounts")
        ws2.append(["Code", "Name", "Type", "Balance"])
        _bold_row(ws2, 1)
        for a in self.store.list_accounts():
            ws2.append([a.code, a.name, a.type, a.balance])
            _money(ws2[f"D{ws2.max_row}"])
        _set_widths(ws2, {"A": 10, "B": 30, "C": 12, "D": 16})

        wb.save(path)
