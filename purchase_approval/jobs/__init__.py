"""
Background jobs for the purchase approval service.

- auto_approval: delayed auto-approval of pending transactions and the
  periodic stale-pending sweep
"""

from .auto_approval import AutoApprovalScheduler, job_id_for

__all__ = ["AutoApprovalScheduler", "job_id_for"]
