"""
Analytics Errors

Validation errors are raised before the event store is touched and carry
the name of the offending request field.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for analytics errors"""


class ValidationError(AnalyticsError):
    """A request parameter was rejected"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidDimensionError(ValidationError):
    """Unrecognized grouping or parent-filter dimension"""

    def __init__(self, value: str, field: str = "groupBy"):
        super().__init__(f"Invalid {field} parameter: {value!r}", field=field)
        self.value = value


class InvalidFilterError(ValidationError):
    """Malformed filter value (dates, times, parent filters)"""


class DrilldownDepthError(ValidationError):
    """Drill path reuses a dimension or exceeds the depth cap"""
