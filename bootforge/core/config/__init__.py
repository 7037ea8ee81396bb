from .models import ExecutionContext
from .validate import ConfigReport, validate_config

__all__ = ["ConfigReport", "ExecutionContext", "validate_config"]
