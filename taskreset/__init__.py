"""taskreset: recurring-task reset engine."""

__version__ = "0.1.0"
