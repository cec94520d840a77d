"""
Validation utilities for the CNC scheduling API
Parse and validate query-string and JSON parameters before any write

All functions raise ValidationException so @handle_errors turns them into
400 responses.
"""
from datetime import datetime, date
from typing import Any, Dict, List, Optional

from app.error_handlers.exceptions import ValidationException


def validate_date_param(value: Optional[str], param_name: str = 'date', required: bool = False) -> Optional[date]:
    """
    Validate and parse date parameter from string.

    Args:
        value: Date string in YYYY-MM-DD format, or None
        param_name: Name of parameter for error messages (default: 'date')
        required: Raise when the value is missing

    Returns:
        date: Parsed date object, or None when optional and missing

    Raises:
        ValidationException: If date is missing (when required) or malformed

    Examples:
        >>> validate_date_param('2025-08-12', 'startDate')
        date(2025, 8, 12)
        >>> validate_date_param('12/08/2025', 'startDate')
        ValidationException: Invalid startDate format. Use YYYY-MM-DD
    """
    if value is None or value == '':
        if required:
            raise ValidationException(f'{param_name} is required', details={'field': param_name})
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationException(
            f"Invalid {param_name} format. Use YYYY-MM-DD (e.g., 2025-08-12)",
            details={'field': param_name, 'value': value}
        )


def validate_int_param(value: Any, param_name: str, required: bool = False) -> Optional[int]:
    """
    Parse an integer parameter.

    Booleans are rejected even though bool is an int subclass.
    """
    if value is None or value == '':
        if required:
            raise ValidationException(f'{param_name} is required', details={'field': param_name})
        return None
    if isinstance(value, bool):
        raise ValidationException(f'{param_name} must be an integer', details={'field': param_name, 'value': value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationException(
            f'{param_name} must be an integer',
            details={'field': param_name, 'value': value}
        )


def validate_float_param(value: Any, param_name: str, required: bool = False) -> Optional[float]:
    """Parse a number parameter; booleans are rejected like in validate_int_param"""
    if value is None or value == '':
        if required:
            raise ValidationException(f'{param_name} is required', details={'field': param_name})
        return None
    if isinstance(value, bool):
        raise ValidationException(f'{param_name} must be a number', details={'field': param_name, 'value': value})
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationException(
            f'{param_name} must be a number',
            details={'field': param_name, 'value': value}
        )


def validate_bool_param(value: Any, param_name: str) -> Optional[bool]:
    """Parse true/false from JSON booleans or query-string text"""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('true', '1', 'yes'):
        return True
    if text in ('false', '0', 'no'):
        return False
    raise ValidationException(
        f'{param_name} must be true or false',
        details={'field': param_name, 'value': value}
    )


def validate_date_range(start: Optional[date], end: Optional[date]) -> None:
    """Reject a range whose start is after its end"""
    if start and end and start > end:
        raise ValidationException(
            'startDate must be on or before endDate',
            details={'start_date': start.isoformat(), 'end_date': end.isoformat()}
        )


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> None:
    """
    Validate that all required fields are present in request data.

    Args:
        data: Request data dictionary
        required_fields: List of required field names

    Raises:
        ValidationException: If any required field is missing
    """
    missing = [field for field in required_fields if data.get(field) in (None, '')]
    if missing:
        raise ValidationException(
            f"Missing required fields: {', '.join(missing)}",
            details={'missing': missing}
        )


def get_json_body(request) -> Dict[str, Any]:
    """JSON object body of the request; an empty body reads as {}"""
    data = request.get_json(silent=True)
    if data is None:
        if request.data:
            raise ValidationException('Request body must be valid JSON')
        return {}
    if not isinstance(data, dict):
        raise ValidationException('Request body must be a JSON object')
    return data
