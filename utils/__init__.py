"""Utilities for running AMACI rounds."""

from .utils import (
    setup_logging,
    save_results,
    PerformanceMonitor,
    create_performance_report,
    create_results_summary,
    convert_to_serializable,
    format_duration,
    get_system_info
)

__all__ = [
    'setup_logging',
    'save_results',
    'PerformanceMonitor',
    'create_performance_report',
    'create_results_summary',
    'convert_to_serializable',
    'format_duration',
    'get_system_info'
]
