"""Qt hosting for the recording pipeline.

:class:`PipelineWorker` owns a pipeline inside a QThread (flush timer plus
chunked CSV exports) and :class:`PipelineController` is the caller-side
handle that starts the thread and posts commands to it.
"""

from .controller import PipelineController
from .pipeline_worker import PipelineWorker

__all__ = ["PipelineController", "PipelineWorker"]
