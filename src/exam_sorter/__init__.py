"""
Exam Sorter.

Splits a batch of per-student exam PDFs into one PDF per problem.
"""

__version__ = "1.0.0"
