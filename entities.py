from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from werkzeug.exceptions import BadRequest


def _parse_int(value: Any, field: str, *, minimum: Optional[int] = None) -> int:
	if isinstance(value, bool):
		raise BadRequest(f"{field} must be an integer")
	# fractional JSON numbers are rejected, not truncated
	if isinstance(value, float) and not value.is_integer():
		raise BadRequest(f"{field} must be an integer")
	try:
		parsed = int(value)
	except (TypeError, ValueError):
		raise BadRequest(f"{field} must be an integer")
	if minimum is not None and parsed < minimum:
		raise BadRequest(f"{field} must be >= {minimum}")
	return parsed


def _parse_str(value: Any, field: str) -> str:
	if not isinstance(value, str) or not value.strip():
		raise BadRequest(f"{field} must be a non-empty string")
	return value.strip()


def _parse_date(value: Any, field: str) -> dt.date:
	if not value or not isinstance(value, str):
		raise BadRequest(f"{field} must be a date string (YYYY-MM-DD)")
	try:
		return dt.date.fromisoformat(value)
	except ValueError:
		raise BadRequest(f"{field} must be a date string (YYYY-MM-DD)")


def _parse_datetime(value: Any, field: str) -> dt.datetime:
	if not value or not isinstance(value, str):
		raise BadRequest(f"{field} must be a datetime string (YYYY-MM-DD HH:MM:SS)")
	try:
		parsed = dt.datetime.fromisoformat(value)
	except ValueError:
		raise BadRequest(f"{field} must be a datetime string (YYYY-MM-DD HH:MM:SS)")
	# DATETIME columns hold no offset; MySQLdb would drop it silently
	if parsed.tzinfo is not None:
		raise BadRequest(f"{field} must not carry a timezone offset")
	return parsed


def _parse_bool(value: Any, field: str) -> bool:
	if not isinstance(value, bool):
		raise BadRequest(f"{field} must be true or false")
	return value


_PARSERS = {
	"int": _parse_int,
	"str": _parse_str,
	"date": _parse_date,
	"datetime": _parse_datetime,
	"bool": _parse_bool,
}


class Field:
	def __init__(self, name: str, kind: str, *, optional: bool = False) -> None:
		if kind not in _PARSERS:
			raise ValueError(f"unknown field kind {kind!r}")
		self.name = name
		self.kind = kind
		self.optional = optional

	def parse(self, body: Mapping[str, Any]) -> Any:
		value = body.get(self.name)
		if value is None:
			if self.optional:
				return None
			raise BadRequest(f"{self.name} is required")
		return _PARSERS[self.kind](value, self.name)

	def to_json(self, value: Any) -> Any:
		if value is None:
			return None
		if self.kind in ("date", "datetime"):
			# str() of date/datetime gives the same text the driver hands back as strings
			return str(value)
		if self.kind == "bool":
			return bool(value)
		if self.kind == "int":
			return int(value)
		return value


class Entity:
	"""Describes one record type: its table, columns and the wording used over HTTP.

	Records travel as plain dicts keyed by column name, the id column first.
	`unique` names the columns checked before insertion; an empty tuple means
	rows are inserted unconditionally.
	"""

	def __init__(
		self,
		name: str,
		table: str,
		id_column: str,
		fields: Iterable[Field],
		*,
		prefix: str,
		label: str,
		plural: str,
		unique: Tuple[str, ...] = (),
		duplicate_message: Optional[str] = None,
	) -> None:
		self.name = name
		self.table = table
		self.id_column = id_column
		self.fields = list(fields)
		self.prefix = prefix
		self.label = label
		self.plural = plural
		self.unique = tuple(unique)
		self.duplicate_message = duplicate_message or f"Duplicate {label}"
		known = set(self.columns)
		for col in self.unique:
			if col not in known:
				raise ValueError(f"{name}: unique column {col!r} is not a field")

	@property
	def columns(self) -> List[str]:
		return [f.name for f in self.fields]

	@property
	def not_found_message(self) -> str:
		return f"{self.label[0].upper()}{self.label[1:]} not found"

	@property
	def missing_message(self) -> str:
		return f"No such {self.label} found"

	@property
	def empty_message(self) -> str:
		return f"No {self.plural} found"

	def parse(self, body: Any, *, with_id: bool = False) -> Dict[str, Any]:
		if not isinstance(body, Mapping):
			raise BadRequest("request body must be a JSON object")
		record: Dict[str, Any] = {}
		if with_id:
			record[self.id_column] = _parse_int(body.get(self.id_column), self.id_column, minimum=1)
		else:
			# ids are assigned by the database
			record[self.id_column] = 0
		for f in self.fields:
			record[f.name] = f.parse(body)
		return record

	def values(self, record: Mapping[str, Any], columns: Optional[Iterable[str]] = None) -> Tuple[Any, ...]:
		return tuple(record.get(col) for col in (columns if columns is not None else self.columns))

	def from_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
		out: Dict[str, Any] = {self.id_column: int(row[self.id_column])}
		for f in self.fields:
			out[f.name] = f.to_json(row.get(f.name))
		return out


STORE = Entity(
	"store",
	"store",
	"store_id",
	[Field("name", "str"), Field("location", "str")],
	prefix="stores",
	label="store",
	plural="stores",
	unique=("name", "location"),
	duplicate_message="There exist such a store in that location",
)

CUSTOMER = Entity(
	"customer",
	"customer",
	"customer_id",
	[Field("name", "str"), Field("phone_no", "str"), Field("location", "str")],
	prefix="customers",
	label="customer",
	plural="customers",
	unique=("phone_no",),
	duplicate_message="Duplicate customer",
)

PRODUCT = Entity(
	"product",
	"product",
	"product_id",
	[Field("name", "str"), Field("price", "int")],
	prefix="products",
	label="product",
	plural="products",
	unique=("name", "price"),
	duplicate_message="Product with the same name and price already exists",
)

SALES_REP = Entity(
	"sales_rep",
	"sales_rep",
	"sales_rep_id",
	[Field("name", "str"), Field("phone_no", "str")],
	prefix="sales-reps",
	label="sales rep",
	plural="sales reps",
	unique=("name", "phone_no"),
	duplicate_message="Duplicate sales rep",
)

SALES_PAIR = Entity(
	"sales_pair",
	"sales_pair",
	"sales_pair_id",
	[
		Field("sales_rep_id_one", "int"),
		Field("sales_rep_id_two", "int"),
		Field("paired_date", "datetime"),
	],
	prefix="sales-pairs",
	label="sales pair",
	plural="sales pairs",
	unique=("sales_rep_id_one", "sales_rep_id_two", "paired_date"),
	duplicate_message="Sales pair already exists",
)

STOCK = Entity(
	"stock",
	"stock_record",
	"stock_id",
	[
		Field("store_id", "int"),
		Field("amount", "int"),
		Field("product_id", "int"),
		Field("quantity", "int"),
		Field("product_worth", "int"),
	],
	prefix="stocks",
	label="stock",
	plural="stocks",
	unique=("store_id", "product_id"),
	duplicate_message="Duplicate stock entry",
)

DEBT = Entity(
	"debt",
	"debt",
	"debt_id",
	[
		Field("customer_id", "int"),
		Field("amount", "int"),
		Field("date", "date"),
		Field("paid_date", "date", optional=True),
		Field("is_paid", "bool"),
	],
	prefix="debts",
	label="debt",
	plural="debts",
	unique=("customer_id", "amount", "date"),
	duplicate_message="Duplicate debt",
)

SALES = Entity(
	"sales",
	"sales",
	"sales_id",
	[
		Field("customer_id", "int"),
		Field("sales_pair_id", "int", optional=True),
		Field("sales_rep_id", "int", optional=True),
		Field("total_price", "int"),
		Field("sales_time", "datetime"),
		Field("product_id", "int"),
		Field("product_quantity", "int"),
	],
	prefix="sales",
	label="sales record",
	plural="sales records",
)

ENTITIES: Tuple[Entity, ...] = (STORE, CUSTOMER, PRODUCT, SALES_REP, SALES_PAIR, STOCK, DEBT, SALES)

BY_NAME: Dict[str, Entity] = {e.name: e for e in ENTITIES}
