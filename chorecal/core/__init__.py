"""
Core configuration, logging, error tracking and exception types.
"""
