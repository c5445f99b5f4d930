"""
Abstract interfaces implemented by providers.
"""
