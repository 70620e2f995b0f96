"""Error message templates for admin API responses"""

ERROR_MESSAGES = {
    # Validation errors
    "unknown_action": "Unknown optimization action: {action}",
    "invalid_message": "Messages must be JSON objects with an 'action' field",
    "missing_field": "Missing required field: {field}",
    "invalid_time_range": "Invalid time range '{value}'. Use 1h, 24h, 7d or 30d",
    "invalid_component": "Component name must be a non-empty string",
    "invalid_size": "Estimated size must be a non-negative number, got {size}",

    # Access errors
    "unauthorized": "Unauthorized access",
    "rate_limited": "Rate limit exceeded. Please try again later.",

    # Processing errors
    "report_failed": "Failed to build memory report",
    "memory_pressure": "Server is under memory pressure. Retry shortly.",

    # Generic errors
    "unknown_error": "Unknown error: {details}"
}

def get_user_message(error_key: str, **kwargs) -> str:
    """Get user-facing error message:

    Args:
        error_key: Error message key from ERROR_MESSAGES
        **kwargs: Values to format into message template

    Returns:
        Formatted error message"""
    template = ERROR_MESSAGES.get(error_key, ERROR_MESSAGES["unknown_error"])
    try:
        return template.format(**kwargs)
    except KeyError:
        return template
