from .export import ExportProcessor, JobCanceled, ProgressTracker

__all__ = ["ExportProcessor", "JobCanceled", "ProgressTracker"]
