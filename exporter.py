from __future__ import annotations

import csv
import datetime as dt
import io
import logging
from typing import Any, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font

from errors import NotFound, UnsupportedFormat
from services import CrudService


logger = logging.getLogger(__name__)

HEADERS = [
	"Customer Name",
	"Total Price",
	"Sales Time",
	"Product name",
	"Product Price",
	"Product Quantity",
]

CONTENT_TYPES = {
	"csv": "text/csv; charset=utf-8",
	"xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def normalize_format(fmt: Optional[str]) -> str:
	value = (fmt or "").strip().lower()
	if value not in CONTENT_TYPES:
		raise UnsupportedFormat(fmt or "")
	return value


class ReportExporter:
	"""Joins every sales record with its customer and product into a flat report."""

	def __init__(self, sales: CrudService, customers: CrudService, products: CrudService) -> None:
		self.sales = sales
		self.customers = customers
		self.products = products

	def rows(self) -> List[List[Any]]:
		sales = self.sales.get_all()
		if not sales:
			return []
		customers = {c["customer_id"]: c for c in self.customers.get_all()}
		products = {p["product_id"]: p for p in self.products.get_all()}

		out: List[List[Any]] = []
		for sale in sales:
			customer = customers.get(sale["customer_id"])
			if customer is None:
				raise NotFound(f"customer {sale['customer_id']} referenced by sales {sale['sales_id']} not found")
			product = products.get(sale["product_id"])
			if product is None:
				raise NotFound(f"product {sale['product_id']} referenced by sales {sale['sales_id']} not found")
			out.append([
				customer["name"],
				sale["total_price"],
				sale["sales_time"],
				product["name"],
				product["price"],
				sale["product_quantity"],
			])
		return out

	def export(self, fmt: Optional[str], *, today: Optional[dt.date] = None) -> Tuple[bytes, str, str]:
		"""Return (body, content type, download filename) for the requested format."""
		fmt = normalize_format(fmt)
		rows = self.rows()
		body = to_csv(rows) if fmt == "csv" else to_xlsx(rows)
		filename = f"sales_{(today or dt.date.today()).isoformat()}.{fmt}"
		logger.info("exported %d sales rows as %s", len(rows), fmt)
		return body, CONTENT_TYPES[fmt], filename


def to_csv(rows: List[List[Any]]) -> bytes:
	buf = io.StringIO()
	writer = csv.writer(buf, lineterminator="\n")
	writer.writerow(HEADERS)
	for row in rows:
		writer.writerow([str(v) for v in row])
	return buf.getvalue().encode("utf-8")


def to_xlsx(rows: List[List[Any]]) -> bytes:
	wb = Workbook()
	ws = wb.active
	ws.title = "Sales"

	header_font = Font(bold=True)
	for col, header in enumerate(HEADERS, 1):
		cell = ws.cell(row=1, column=col, value=header)
		cell.font = header_font

	for r, row in enumerate(rows, 2):
		for col, value in enumerate(row, 1):
			ws.cell(row=r, column=col, value=value)

	buf = io.BytesIO()
	wb.save(buf)
	return buf.getvalue()
