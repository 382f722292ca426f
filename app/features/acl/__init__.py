"""
Object ACL feature module.

Resolves per-object access policies stored as object metadata and evaluates
group membership to decide read/write access.
"""
