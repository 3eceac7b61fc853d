# Shared utilities — formatters, validators, retry
from vdflow.utils.formatters import round_payload
from vdflow.utils.retry import TransientHTTPError, with_retry
from vdflow.utils.validators import validate_ticker

__all__ = [
    "TransientHTTPError",
    "round_payload",
    "validate_ticker",
    "with_retry",
]
