from .schema import ALLOWED_EVENTS, validate_pipeline_obj
from .loader import load_configuration, starter_definition

__all__ = [
    "ALLOWED_EVENTS",
    "load_configuration",
    "starter_definition",
    "validate_pipeline_obj",
]
