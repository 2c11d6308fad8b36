"""HAR (HTTP Archive) parsing and translation.

This module turns HAR files captured from browser developer tools into
workspace requests and a flow graph.

Example usage:
    from harflow.har import parse_har_file, translate_archive

    archive = parse_har_file("checkout.har")
    result = translate_archive(archive, workspace_id)
    print(f"{len(result.nodes) - 1} requests, {len(result.edges)} edges")
"""

from harflow.har.parser import (
    HARArchive,
    HARContent,
    HAREntry,
    HARNameValue,
    HARPostData,
    HARRequest,
    HARResponse,
    parse_har_bytes,
    parse_har_file,
    parse_har_string,
)
from harflow.har.translator import (
    TranslateOptions,
    TranslationResult,
    translate,
    translate_archive,
    translate_file,
    validate_result,
)
from harflow.har.urls import URLClassification, classify_url, sanitize_name

__all__ = [
    # Parser
    "HARArchive",
    "HARContent",
    "HAREntry",
    "HARNameValue",
    "HARPostData",
    "HARRequest",
    "HARResponse",
    "parse_har_bytes",
    "parse_har_file",
    "parse_har_string",
    # URLs
    "URLClassification",
    "classify_url",
    "sanitize_name",
    # Translator
    "TranslateOptions",
    "TranslationResult",
    "translate",
    "translate_archive",
    "translate_file",
    "validate_result",
]
