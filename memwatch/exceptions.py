from typing import Optional

class MemwatchError(Exception):
    """Base exception for all Memwatch errors"""
    def __init__(self, message: str, context: Optional[dict] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self):
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class RegistryError(MemwatchError):
    """Raised for invalid registration input"""
    pass


class ValidationError(MemwatchError):
    """Raised when admin API input validation fails"""
    pass
