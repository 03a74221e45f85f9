"""docweave: document normalization, chunking, versioning and pipeline execution.

The usual entry point is :func:`docweave.main.build_engine`, which returns a
fully wired :class:`~docweave.pipeline.engine.PipelineEngine`.
"""

__version__ = "0.1.0"
