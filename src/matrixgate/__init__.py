from .aggregate import aggregate, worst
from .dsl import gate, job, matrix, param, sh, triggers, wf
from .model import Job, JobSpec, ParameterDefinition, PhaseOutcome, Severity, Step, TriggerConfig
from .orchestrator import PhaseOrchestrator
from .runner import load_workflow, run_workflow

__version__ = "0.1.0"

__all__ = [
    "aggregate", "worst",
    "gate", "job", "matrix", "param", "sh", "triggers", "wf",
    "Job", "JobSpec", "ParameterDefinition", "PhaseOutcome", "Severity", "Step", "TriggerConfig",
    "PhaseOrchestrator",
    "load_workflow", "run_workflow",
]
