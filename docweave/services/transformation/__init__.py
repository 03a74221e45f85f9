"""Transformation chain composer and built-in transforms."""

from docweave.services.transformation.composer import (
    ComposedChain,
    TransformationComposer,
    merge_parallel_outputs,
)

__all__ = ["ComposedChain", "TransformationComposer", "merge_parallel_outputs"]
