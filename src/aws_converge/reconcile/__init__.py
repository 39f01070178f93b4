"""Parameter reconciliation."""

from .parameters import (
    EXCLUDED_RESET_NAME,
    RESERVED_MEMORY_PERCENT_NAME,
    MAX_PARAMETERS_PER_REQUEST,
    Parameter,
    ParameterSet,
    ReconciliationResult,
    chunked,
    parameter_hash,
    reconcile,
)

__all__ = [
    'EXCLUDED_RESET_NAME',
    'RESERVED_MEMORY_PERCENT_NAME',
    'MAX_PARAMETERS_PER_REQUEST',
    'Parameter',
    'ParameterSet',
    'ReconciliationResult',
    'chunked',
    'parameter_hash',
    'reconcile',
]
