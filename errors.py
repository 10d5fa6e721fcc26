from __future__ import annotations


class ServiceError(Exception):
	"""Base class for failures reported by services and the report exporter."""


class NotFound(ServiceError):
	pass


class DuplicateEntity(ServiceError):
	pass


class UnsupportedFormat(ServiceError):
	def __init__(self, fmt: str) -> None:
		super().__init__(f"unsupported export format: {fmt!r}")
		self.format = fmt


class StorageError(ServiceError):
	"""Wraps a driver failure; the original exception is kept as __cause__."""


MYSQL_DUPLICATE_ENTRY = 1062


def is_duplicate_key(exc: Exception) -> bool:
	"""True for MySQL error 1062 (ER_DUP_ENTRY) on a unique or primary key."""
	if exc.args and exc.args[0] == MYSQL_DUPLICATE_ENTRY:
		return True
	return "Duplicate entry" in str(exc)
