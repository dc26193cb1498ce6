# Views module - role-scoped lists and counters
from .projector import LiveView, ViewProjector
from .scopes import Scope, build_predicate, scope_for

__all__ = ["LiveView", "ViewProjector", "Scope", "build_predicate", "scope_for"]
