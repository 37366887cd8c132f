"""
Scheduler Package

Background job scheduling with monitoring and error handling.
"""

from caronas.scheduler.jobs import rating_expiry_job

__all__ = ["rating_expiry_job"]
