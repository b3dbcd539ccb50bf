"""
Exception grant package.

Orchestrates a single grant: merge the identity into the rule, write the
rule back when it changed, and track the rule for the next sweep.
"""

from .service import ExceptionGrantService, INVALID_RULE_STATUS, SKIPPED_STATUS

__all__ = ["ExceptionGrantService", "INVALID_RULE_STATUS", "SKIPPED_STATUS"]
