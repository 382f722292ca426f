"""
Field-level encryption for PHI persisted at rest.
"""
