"""
Identity expression package.

Parses the identity-match expression carried by Gateway rules and merges
new identities into it without disturbing existing entries.
"""

from .expression import IdentityExpression, MergeResult, merge_identity

__all__ = ["IdentityExpression", "MergeResult", "merge_identity"]
