"""
Exceptions and diagnostics for the schema builder.

Pure operations (tree edits, compilation, import) never raise for recoverable
problems; they report them as Diagnostic records instead. The exception
classes here are raised only by the outer layers (text parsing, storage).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class DiagnosticType:
    """Diagnostic type constants."""
    DANGLING_REFERENCE = "dangling_reference"
    CIRCULAR_DEFINITION = "circular_definition"
    IMPORT_AMBIGUITY = "import_ambiguity"


@dataclass
class Diagnostic:
    """
    Advisory message produced by the compiler or importer.

    Attributes:
        type: One of the DiagnosticType constants
        message: Human readable description
        path: Dotted property path the message refers to (empty for the root)
    """
    type: str
    message: str
    path: str = ""
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'message': self.message,
            'path': self.path,
            'context': dict(self.context)
        }


def report(diagnostics: List[Diagnostic], diagnostic_type: str, message: str,
           path: str = "", **context: Any) -> Diagnostic:
    """Append a diagnostic to the list and log it."""
    diagnostic = Diagnostic(diagnostic_type, message, path, context)
    diagnostics.append(diagnostic)
    logger.warning(f"[{diagnostic_type}] {path or '<root>'}: {message}")
    return diagnostic


class SchemaBuilderError(Exception):
    """
    Base exception for schema builder errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class SchemaParseError(SchemaBuilderError):
    """
    Raised when text handed to the importer is not a JSON object.

    This covers invalid JSON syntax as well as valid JSON whose top level
    is not an object.
    """

    def __init__(self, reason: str, line: Optional[int] = None,
                 column: Optional[int] = None):
        self.reason = reason
        self.line = line
        self.column = column

        message = f"Invalid JSON Schema text: {reason}"
        if line is not None:
            message += f" (line {line}, column {column})"

        context = {
            'reason': reason,
            'line': line,
            'column': column
        }

        recovery_suggestions = [
            "Check the pasted text is complete JSON",
            "Ensure the top level is an object with 'properties'",
            "Remove trailing commas and comments"
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaStorageError(SchemaBuilderError):
    """Raised when the key-value store cannot read or write a value."""

    def __init__(self, key: str, original_error: Exception,
                 message: Optional[str] = None):
        self.key = key
        self.original_error = original_error

        if message is None:
            message = f"Storage operation failed for '{key}': {str(original_error)}"

        context = {
            'key': key,
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check the storage directory exists and is writable",
            "Verify sufficient disk space is available",
            "Remove or fix corrupted files in the storage directory"
        ]

        super().__init__(message, context, recovery_suggestions)


class DuplicateSchemaNameError(SchemaBuilderError):
    """Raised when saving a schema under a name that is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"A schema with the name \"{name}\" already exists. Please choose a different name.",
            {'name': name},
            ["Choose a different name", "Delete the existing schema first", "Save with overwrite enabled"]
        )


class SchemaNotFoundError(SchemaBuilderError):
    """Raised when loading a saved schema that does not exist."""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        self.name = name
        self.available = available or []
        super().__init__(
            f"No saved schema named \"{name}\"",
            {'name': name, 'available': self.available},
            ["Select one of the saved schemas", "Check the storage directory configuration"]
        )
