"""Pipeline wiring the conversion stages together."""

from .orchestrator import Orchestrator

__all__ = ["Orchestrator"]
