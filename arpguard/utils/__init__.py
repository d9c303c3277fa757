# Utils package
from .logging_utils import setup_logging, get_logger, LogTimer
from .audit import AuditSink, AuditLogger, AuditLogEntry

__all__ = ['setup_logging', 'get_logger', 'LogTimer', 'AuditSink', 'AuditLogger', 'AuditLogEntry']
