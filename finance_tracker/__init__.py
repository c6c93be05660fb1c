"""
Finance Tracker - Source Package

A personal-finance tracker: income and expense transactions,
category budgets, savings goals and the dashboards derived from them.

DESIGN PRINCIPLES:
1. Derived views are recomputed from scratch, never patched
2. Invalid input is rejected before an entity exists
3. Placeholder chart data is always flagged as such
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
