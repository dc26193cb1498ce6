from .machine import WorkflowStateMachine, state_machine, validate_transition, next_statuses, is_terminal

__all__ = ["WorkflowStateMachine", "state_machine", "validate_transition", "next_statuses", "is_terminal"]
