"""
Factories building components from configuration.
"""
