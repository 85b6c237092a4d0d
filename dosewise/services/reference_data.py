"""
Shared reference index.

The dataset is loaded once per process behind a memoizing accessor and
handed to callers explicitly (FastAPI dependencies, service arguments).
"""
from functools import lru_cache

from dosewise.config import get_settings
from dosewise.engine.reference import ReferenceIndex


@lru_cache
def get_reference_index() -> ReferenceIndex:
    return ReferenceIndex.from_file(get_settings().reference_dataset_path)
