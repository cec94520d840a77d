"""
Utility modules for the CNC scheduling engine
"""
from .validators import (
    validate_date_param,
    validate_int_param,
    validate_float_param,
    validate_bool_param,
    validate_date_range,
    validate_required_fields,
    get_json_body,
)

__all__ = [
    'validate_date_param',
    'validate_int_param',
    'validate_float_param',
    'validate_bool_param',
    'validate_date_range',
    'validate_required_fields',
    'get_json_body',
]
