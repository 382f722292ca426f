"""
Permission feature module.

Role-based access control for the organ/tissue traceability roles and the
access decision engine that combines it with per-object ACL policies.
"""
