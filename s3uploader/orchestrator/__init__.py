"""Orchestrator package - coordinates upload workflows."""
from .core import StorageAdapter
from .sink import UploadSink
from .upload import UploadOrchestrator, build_put_params

__all__ = ["StorageAdapter", "UploadSink", "UploadOrchestrator", "build_put_params"]
