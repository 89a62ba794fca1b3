"""
Common Components for Assessflow

This package contains infrastructure shared by the assessment modules:

1. Logging - Centralized logging configuration
2. Error Handling - Error taxonomy and API error responses
3. Threading - Keyed locks and deadline timers
4. Database - Engine and transactional session management
"""

from assessflow.common.logger import app_logger

__all__ = ['app_logger']
