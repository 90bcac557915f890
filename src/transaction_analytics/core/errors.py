"""Exception hierarchy for the transaction analytics service.

Every failure the service reports derives from TransactionAnalyticsError so
callers can catch the whole family at the process boundary:

- ConfigurationError: missing or unreadable configured values/locations
- SchemaError: invalid field list passed to define_schema()
- RegistrationError: duplicate/conflicting tables or functions, unreadable
  sources (SchemaMismatchError narrows it to declared-vs-actual types)
- ParseError: malformed or unsupported query text
- PlanError: unresolved table, column or function references
- ExecutionError: runtime faults while evaluating a plan (EvaluationError
  narrows it to scalar function faults)
- MaterializationError: the result sink could not be written
"""

from __future__ import annotations


class TransactionAnalyticsError(Exception):
    """Base class for all service errors."""


class ConfigurationError(TransactionAnalyticsError):
    """Raised when a configuration value or configured location is unusable."""


class SchemaError(TransactionAnalyticsError):
    """Raised when a schema definition is invalid."""


class RegistrationError(TransactionAnalyticsError):
    """Raised when a table or scalar function cannot be registered."""


class SchemaMismatchError(RegistrationError):
    """Raised when a physical source disagrees with the declared schema."""


class ParseError(TransactionAnalyticsError):
    """Raised for malformed or unsupported query text."""


class PlanError(TransactionAnalyticsError):
    """Raised when a query references something the catalog does not know."""


class ExecutionError(TransactionAnalyticsError):
    """Raised for runtime type or scan faults while running a plan."""


class EvaluationError(ExecutionError):
    """Raised when a scalar function faults at call time."""


class MaterializationError(TransactionAnalyticsError):
    """Raised when a rendered result cannot be written to its sink."""


__all__ = [
    "TransactionAnalyticsError",
    "ConfigurationError",
    "SchemaError",
    "RegistrationError",
    "SchemaMismatchError",
    "ParseError",
    "PlanError",
    "ExecutionError",
    "EvaluationError",
    "MaterializationError",
]
