"""
Exceptions Service package for the Access Exceptions Layer.

When a Gateway policy logs a request, the user lands on a coaching page and
receives a temporary exception: their identity is added to the rule's
identity expression so the policy no longer applies to them. A periodic
sweep revokes every such exception. It provides:

- app.main: FastAPI front door (coaching page, health, metrics) and lifecycle.
- app.identity: Parser and merger for the rule identity expression.
- app.grants: Exception grant orchestration.
- app.sweep: Sweep of all tracked rules and the interval scheduler.
- app.adapters: Gateway rules API and Redis tracking store clients.
- app.coaching: Coaching page rendering.

Guidelines:
- The service is stateless; rules and tracking live in external stores.
- Failures are reported as status strings or log events, never raised to callers.
"""
