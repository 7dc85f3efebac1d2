# Public surface of the orchestrator package.
from ._handles import AdapterHandle
from ._types import DistributionResult, ResolvedData, SourceData, SyncResult
from .facade import Orchestrator

__all__ = ["Orchestrator", "AdapterHandle", "SourceData", "ResolvedData", "DistributionResult", "SyncResult"]
