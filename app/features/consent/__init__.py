"""
Consent tracking and the consent gate.
"""
