"""
Domain Services Package

Architectural Intent:
- Contains pure domain services used by the stack lifecycle
"""

from stackweaver.domain.services.plan_mapper import PlanMapper

__all__ = ["PlanMapper"]
