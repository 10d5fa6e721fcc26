from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from entities import ENTITIES, Entity
from errors import DuplicateEntity, NotFound, ServiceError, StorageError, is_duplicate_key


logger = logging.getLogger(__name__)


def _fetchone_dict(cursor) -> Optional[Dict[str, Any]]:
	row = cursor.fetchone()
	if row is None:
		return None
	if isinstance(row, dict):
		return row
	# MySQLdb typically returns tuples, but flask-mysqldb uses DictCursor only if set
	desc = [col[0] for col in cursor.description]
	return dict(zip(desc, row))


def _fetchall_dict(cursor) -> List[Dict[str, Any]]:
	rows = cursor.fetchall() or []
	if rows and isinstance(rows[0], dict):
		return list(rows)
	desc = [col[0] for col in cursor.description]
	return [dict(zip(desc, r)) for r in rows]


class CrudService:
	"""Create/read/update/delete for one entity table.

	`db` is the shared connection handle (the flask-mysqldb ``MySQL`` extension
	in the app); the service only borrows ``db.connection`` and never closes it.
	Every driver failure leaves this class as a ``ServiceError`` subclass.
	"""

	def __init__(self, db: Any, entity: Entity) -> None:
		self.db = db
		self.entity = entity

	def _cursor(self):
		return self.db.connection.cursor()

	@contextmanager
	def _storage(self, action: str) -> Iterator[None]:
		try:
			yield
		except ServiceError:
			raise
		except Exception as exc:
			if is_duplicate_key(exc):
				logger.info("%s %s rejected by unique key: %s", action, self.entity.name, exc)
				raise DuplicateEntity(self.entity.duplicate_message) from exc
			logger.error("%s %s failed: %s", action, self.entity.name, exc)
			raise StorageError(f"failed to {action} {self.entity.label}") from exc

	def _write(self, action: str, sql: str, params: Sequence[Any]):
		with self._storage(action):
			conn = self.db.connection
			cur = conn.cursor()
			try:
				cur.execute(sql, params)
				conn.commit()
			except Exception:
				conn.rollback()
				raise
			return cur

	def _select_sql(self) -> str:
		cols = ", ".join([self.entity.id_column] + self.entity.columns)
		return f"SELECT {cols} FROM {self.entity.table}"

	def exists(self, record_id: int) -> bool:
		e = self.entity
		with self._storage("look up"):
			cur = self._cursor()
			cur.execute(f"SELECT 1 FROM {e.table} WHERE {e.id_column}=%s LIMIT 1", (record_id,))
			return cur.fetchone() is not None

	def _duplicate_exists(self, record: Mapping[str, Any]) -> bool:
		e = self.entity
		where = " AND ".join(f"{col}=%s" for col in e.unique)
		with self._storage("check"):
			cur = self._cursor()
			cur.execute(f"SELECT 1 FROM {e.table} WHERE {where} LIMIT 1", e.values(record, e.unique))
			return cur.fetchone() is not None

	def create(self, record: Mapping[str, Any]) -> Dict[str, Any]:
		e = self.entity
		# pre-check only; the schema's UNIQUE constraints still reject a racing insert
		if e.unique and self._duplicate_exists(record):
			logger.info("%s already exists: %s", e.name, dict(zip(e.unique, e.values(record, e.unique))))
			raise DuplicateEntity(e.duplicate_message)

		placeholders = ",".join(["%s"] * len(e.columns))
		cur = self._write(
			"create",
			f"INSERT INTO {e.table} ({', '.join(e.columns)}) VALUES ({placeholders})",
			e.values(record),
		)
		new_id = cur.lastrowid
		logger.info("created %s %s", e.name, new_id)
		return self.get(new_id)

	def get(self, record_id: int) -> Dict[str, Any]:
		e = self.entity
		with self._storage("get"):
			cur = self._cursor()
			cur.execute(f"{self._select_sql()} WHERE {e.id_column}=%s", (record_id,))
			row = _fetchone_dict(cur)
		if row is None:
			raise NotFound(e.not_found_message)
		return e.from_row(row)

	def get_all(self) -> List[Dict[str, Any]]:
		with self._storage("list"):
			cur = self._cursor()
			cur.execute(self._select_sql())
			rows = _fetchall_dict(cur)
		return [self.entity.from_row(r) for r in rows]

	def update(self, record: Mapping[str, Any]) -> Dict[str, Any]:
		"""Replace every field of an existing row; raises NotFound for unknown ids.

		Existence is checked separately because MySQL reports zero affected
		rows for an UPDATE that changes nothing.
		"""
		e = self.entity
		record_id = record[e.id_column]
		if not self.exists(record_id):
			raise NotFound(e.not_found_message)

		assignments = ", ".join(f"{col}=%s" for col in e.columns)
		self._write(
			"update",
			f"UPDATE {e.table} SET {assignments} WHERE {e.id_column}=%s",
			e.values(record) + (record_id,),
		)
		logger.info("updated %s %s", e.name, record_id)
		return self.get(record_id)

	def delete(self, record_id: int) -> bool:
		e = self.entity
		if not self.exists(record_id):
			raise NotFound(e.missing_message)

		cur = self._write("delete", f"DELETE FROM {e.table} WHERE {e.id_column}=%s", (record_id,))
		logger.info("deleted %s %s", e.name, record_id)
		return cur.rowcount > 0


def build_services(db: Any) -> Dict[str, CrudService]:
	return {e.name: CrudService(db, e) for e in ENTITIES}
