import logging
import os


class Config:
    MYSQL_USER = os.getenv('MYSQL_USER', 'root')
    MYSQL_PASSWORD = os.getenv('MYSQL_PASSWORD', 'root123')
    MYSQL_HOST = os.getenv('MYSQL_HOST', 'localhost')
    MYSQL_DB = os.getenv('MYSQL_DB', 'inventory_db')
    MYSQL_PORT = int(os.getenv('MYSQL_PORT', 3306))
    MYSQL_CURSORCLASS = os.getenv('MYSQL_CURSORCLASS', 'DictCursor')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    SCHEMA_PATH = os.getenv('SCHEMA_PATH', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'schema.sql'))


LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


_console_handler = None


def configure_logging(level_name):
    """Attach a console handler to the root logger once; later calls only adjust the level."""
    global _console_handler

    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if _console_handler is None:
        _console_handler = logging.StreamHandler()
        _console_handler.setFormatter(logging.Formatter(LOG_FORMAT, '%Y-%m-%d %H:%M:%S'))
        root.addHandler(_console_handler)
    return level
