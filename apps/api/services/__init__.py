"""
Services package for the OPD CRM API
Contains reporting queries and background housekeeping
"""

from .booking_reference import BookingReferenceGenerator
from .token_cleanup import TokenCleanupScheduler, cleanup_expired_tokens

__all__ = [
    'BookingReferenceGenerator',
    'TokenCleanupScheduler',
    'cleanup_expired_tokens',
]
