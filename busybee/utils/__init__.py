"""
Common utilities package for busybee: logging and authentication helpers.
"""

from busybee.utils.logger import cleanup_old_logs, safe_log_value, setup_logger

__all__ = ["cleanup_old_logs", "safe_log_value", "setup_logger"]
