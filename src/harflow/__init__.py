"""harflow - turn recorded HTTP sessions into executable flows.

Translates a HAR (HTTP Archive) recording into:
- Base and delta request records, with values that came from earlier
  responses rewritten as template references
- A workspace file tree derived from request URLs
- A flow graph whose edges follow data dependencies, timing, and write
  ordering, reduced to a minimal DAG and laid out left to right

Example:
    >>> from harflow import translate
    >>> from harflow.ids import new_id
    >>> result = translate(har_bytes, workspace_id=new_id())
    >>> [node.name for node in result.nodes]
    ['Start', 'request_1', 'request_2']
"""

from harflow.config import HarflowSettings, get_settings
from harflow.depfinder import DependencyRegistry, TemplateResult, VarRef
from harflow.exceptions import (
    CorruptDataError,
    HarflowError,
    HARParseError,
    InternalError,
    InvalidInputError,
)
from harflow.har import TranslateOptions, TranslationResult, translate, translate_file
from harflow.ids import MonotonicIdSource, SequentialIdSource, new_id

__version__ = "0.4.0"

__all__ = [
    "__version__",
    # Translation
    "TranslateOptions",
    "TranslationResult",
    "translate",
    "translate_file",
    # Dependencies
    "DependencyRegistry",
    "TemplateResult",
    "VarRef",
    # Identifiers
    "MonotonicIdSource",
    "SequentialIdSource",
    "new_id",
    # Configuration
    "HarflowSettings",
    "get_settings",
    # Exceptions
    "HarflowError",
    "InvalidInputError",
    "HARParseError",
    "CorruptDataError",
    "InternalError",
]
