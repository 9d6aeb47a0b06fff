"""
Pre-compression pipeline

Generates ``.gz`` siblings for files that shrink under gzip:
- compressor.py - conditional compression of a single file
- walker.py - tree enumeration with ignore and sibling skipping
- pool.py - worker threads and result aggregation
- orchestrator.py - wiring all of the above into one run
"""

from precompress.pipeline.compressor import try_compress
from precompress.pipeline.orchestrator import recursive

__all__ = ["recursive", "try_compress"]
