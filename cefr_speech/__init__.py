"""
Application package containing configuration, persistence, and the acoustic
analysis, scoring, history and placement services for the CEFR speech
assessment FastAPI project.
"""

__all__ = [
    "config",
    "time_utils",
    "db",
    "repositories",
    "schemas",
    "cefr_data",
]
