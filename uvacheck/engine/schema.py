"""
JSON output contract for uvacheck diagnostics.

This module provides the JSON schema of the runner output and helpers to
serialize diagnostics and validate output against it.
"""

from pathlib import Path
from typing import Any, Dict, List

import jsonschema

from .types import Diagnostic

# Current protocol version
PROTOCOL_VERSION = "1"
ENGINE_VERSION = "0.1.0"

_RANGE_SCHEMA = {
    "type": "object",
    "properties": {
        "startLine": {"type": "integer", "minimum": 1},
        "startCol": {"type": "integer", "minimum": 0},
        "endLine": {"type": "integer", "minimum": 1},
        "endCol": {"type": "integer", "minimum": 0}
    },
    "required": ["startLine", "startCol", "endLine", "endCol"],
    "additionalProperties": False,
    "description": "Line/column range (1-based lines, 0-based columns)"
}

# JSON Schema for a single finding
FINDING_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "rule_id": {"type": "string", "description": "Rule identifier that generated this finding"},
        "message": {"type": "string", "description": "Human-readable description of the issue"},
        "file_path": {"type": "string", "description": "Absolute native file path where the issue was found"},
        "uri": {"type": "string", "description": "File URI"},
        "start_byte": {"type": "integer", "minimum": 0},
        "end_byte": {"type": "integer", "minimum": 0},
        "range": _RANGE_SCHEMA,
        "severity": {"type": "string", "enum": ["info", "warning", "error"]},
        "category": {"type": "string"},
        "meta": {"type": "object", "description": "Optional metadata about the finding"}
    },
    "required": ["rule_id", "message", "file_path", "uri", "start_byte", "end_byte", "range", "severity", "category"],
    "additionalProperties": False
}

# JSON Schema for the full runner output
RUNNER_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "uvacheck.protocol": {"type": "string", "description": "Protocol version"},
        "engine_version": {"type": "string"},
        "files_scanned": {"type": "integer", "minimum": 0},
        "rules_run": {"type": "integer", "minimum": 0},
        "findings": {"type": "array", "items": FINDING_JSON_SCHEMA},
        "metrics": {"type": "object"},
        "cancelled": {"type": "boolean"}
    },
    "required": ["uvacheck.protocol", "engine_version", "files_scanned", "rules_run", "findings", "metrics"],
    "additionalProperties": False
}


def normalize_path_for_protocol(file_path: str) -> tuple[str, str]:
    """
    Normalize a file path for protocol output.

    Returns:
        Tuple of (absolute_native_path, file_uri)
    """
    path = Path(file_path).resolve()
    return str(path), path.as_uri()


def diagnostic_to_json(diagnostic: Diagnostic) -> Dict[str, Any]:
    """Convert a diagnostic to its protocol dictionary."""
    file_path, uri = normalize_path_for_protocol(diagnostic.file)
    return {
        "rule_id": diagnostic.rule,
        "message": diagnostic.message,
        "file_path": file_path,
        "uri": uri,
        "start_byte": diagnostic.start_byte,
        "end_byte": diagnostic.end_byte,
        "range": {
            "startLine": diagnostic.line,
            "startCol": diagnostic.column - 1,
            "endLine": diagnostic.end_line,
            "endCol": diagnostic.end_column - 1
        },
        "severity": diagnostic.severity,
        "category": diagnostic.category,
        "meta": diagnostic.meta_dict
    }


def diagnostics_to_json(diagnostics: List[Diagnostic]) -> List[Dict[str, Any]]:
    return [diagnostic_to_json(d) for d in diagnostics]


def validate_runner_output(output: Dict[str, Any]) -> List[str]:
    """
    Validate runner output against the schema.

    Returns:
        List of validation errors (empty if valid)
    """
    validator = jsonschema.Draft7Validator(RUNNER_OUTPUT_SCHEMA)
    return [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in validator.iter_errors(output)
    ]
