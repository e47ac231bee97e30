import os
from datetime import date
from typing import Dict, Iterable, List

from openpyxl import Workbook

from db.models import Order
from utils.pure import money_to_float, short_id

EXPORT_COLUMNS = ["ID", "Fecha", "Cliente", "Telefono", "Estado", "Pagado", "Total", "Items"]
SHEET_NAME = "Ventas"


def order_export_rows(orders: Iterable[Order]) -> List[Dict[str, object]]:
    """Flatten orders into spreadsheet rows, one per order."""
    return [
        {
            "ID": short_id(order.id),
            "Fecha": order.created_at.strftime("%d/%m/%Y"),
            "Cliente": order.client_name,
            "Telefono": order.client_phone,
            "Estado": order.status.value,
            "Pagado": "SI" if order.is_paid else "NO",
            "Total": money_to_float(order.total_amount),
            "Items": len(order.items),
        }
        for order in orders
    ]


def default_export_name(today: date | None = None) -> str:
    return f"Reporte_Ventas_{(today or date.today()).isoformat()}.xlsx"


def write_orders_xlsx(orders: Iterable[Order], path: str) -> str:
    """
    Write the sales report workbook to ``path`` (a directory or a file name).

    One "Ventas" sheet with a header row; Total and Items are numeric cells.
    Returns the path written.
    """
    if os.path.isdir(path):
        path = os.path.join(path, default_export_name())
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_NAME
    sheet.append(EXPORT_COLUMNS)
    for row in order_export_rows(orders):
        sheet.append([row[column] for column in EXPORT_COLUMNS])
    workbook.save(path)
    return path
