"""
Core models and errors shared by the migration engine.
"""
