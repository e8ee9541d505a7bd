"""
ChoreCal
Task-to-Google-Calendar synchronization engine for the ChorePulse household app.
"""

__version__ = "1.0.0"
