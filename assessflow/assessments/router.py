"""
Assessment Router

This module exports the router from the assessment controller module.
"""

import logging
from assessflow.assessments.controller import router

logger = logging.getLogger(__name__)
logger.info(f"Assessment router loaded with {len(router.routes)} routes")

__all__ = ['router']
