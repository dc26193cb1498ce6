# Services module - claim arbitration and the workflow command surface
from .claims import ClaimArbitrator
from .workflow import WorkflowService

__all__ = ["ClaimArbitrator", "WorkflowService"]
