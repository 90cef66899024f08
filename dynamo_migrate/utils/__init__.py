"""
Configuration, registries and input validation helpers.
"""
