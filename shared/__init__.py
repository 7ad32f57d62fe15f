"""
TECHRUN Shared Module

Common utilities used across services.
"""

from .utils import setup_logger, success_response, error_response

__all__ = [
    'setup_logger',
    'success_response',
    'error_response',
]
