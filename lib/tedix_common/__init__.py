"""Common Library

Shared utilities and classes for the brand discovery pipeline.
"""

from tedix_common import constants
from tedix_common.config import PipelineConfig
from tedix_common.logging_utils import log_summary, safe_log_event

__all__ = [
    "PipelineConfig",
    "constants",
    "log_summary",
    "safe_log_event",
]
