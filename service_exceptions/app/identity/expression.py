"""
Identity expression parsing and merging.

A rule's ``identity`` field is either empty or a negated set-membership
predicate of the form::

    not(identity.email in {"a@example.com" "b@example.com"})

``IdentityExpression`` is the typed view of that string: the text before the
brace list, the ordered identities inside it and the text after it. All
knowledge of the wire format lives in ``parse`` and ``render``.

Identities are assumed to contain neither double quotes nor spaces.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from shared.errors import ExpressionFormatError

MEMBERSHIP_MARKER = "identity.email in {"
SEPARATOR = '" "'
DEFAULT_PREFIX = "not(identity.email in "
DEFAULT_SUFFIX = ")"


@dataclass(frozen=True)
class IdentityExpression:
    """Parsed negated set-membership expression."""
    prefix: str
    identities: Tuple[str, ...]
    suffix: str

    @classmethod
    def for_identity(cls, identity: str) -> "IdentityExpression":
        """Build the expression exempting a single identity."""
        return cls(prefix=DEFAULT_PREFIX, identities=(identity,), suffix=DEFAULT_SUFFIX)

    @classmethod
    def parse(cls, expression: str) -> "IdentityExpression":
        """Parse ``expression``, raising ``ExpressionFormatError`` when it does not fit."""
        marker_at = expression.find(MEMBERSHIP_MARKER)
        if marker_at < 0:
            raise ExpressionFormatError(expression, marker_present=False)

        open_at = marker_at + len(MEMBERSHIP_MARKER) - 1
        if not expression.startswith('{"', open_at):
            raise ExpressionFormatError(expression, marker_present=True)

        close_at = expression.find('"}', open_at + 2)
        if close_at < 0:
            raise ExpressionFormatError(expression, marker_present=True)

        inner = expression[open_at + 2:close_at]
        identities = tuple(inner.split(SEPARATOR))
        for identity in identities:
            if not identity or '"' in identity:
                raise ExpressionFormatError(expression, marker_present=True)

        return cls(
            prefix=expression[:open_at],
            identities=identities,
            suffix=expression[close_at + 2:],
        )

    def contains(self, identity: str) -> bool:
        return identity in self.identities

    def with_identity(self, identity: str) -> "IdentityExpression":
        """Return a copy with ``identity`` appended, unless already present."""
        if self.contains(identity):
            return self
        return IdentityExpression(self.prefix, self.identities + (identity,), self.suffix)

    def render(self) -> str:
        quoted = " ".join(f'"{identity}"' for identity in self.identities)
        return f"{self.prefix}{{{quoted}}}{self.suffix}"


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging one identity into an expression."""
    expression: str
    changed: bool
    format_recognized: bool = True
    error: Optional[ExpressionFormatError] = None


def merge_identity(current_expression: Optional[str], identity: str) -> MergeResult:
    """Merge ``identity`` into ``current_expression``.

    Idempotent and order preserving: existing identities are never removed or
    reordered, and merging an identity that is already present reports
    ``changed=False``. Unrecognized expressions are returned untouched with
    ``format_recognized=False``.
    """
    if not current_expression:
        rendered = IdentityExpression.for_identity(identity).render()
        return MergeResult(expression=rendered, changed=True)

    try:
        parsed = IdentityExpression.parse(current_expression)
    except ExpressionFormatError as exc:
        return MergeResult(
            expression=current_expression,
            changed=False,
            format_recognized=False,
            error=exc,
        )

    if parsed.contains(identity):
        return MergeResult(expression=current_expression, changed=False)

    return MergeResult(expression=parsed.with_identity(identity).render(), changed=True)
