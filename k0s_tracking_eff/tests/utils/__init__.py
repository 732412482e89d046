"""
Test utilities and helper functions.

Provides common functionality for test setup, data generation,
and result validation across the test suite.
"""

from .mock_data_generator import (
    create_mock_ao2d_file,
    generate_mock_tables,
    k0s_daughter_momenta,
)
from .test_helpers import (
    assert_arrays_close,
    assert_file_exists,
    assert_raises_with_message,
    assert_value_in_range,
    count_files_in_dir,
    total_entries,
)

__all__ = [
    "assert_arrays_close",
    "assert_file_exists",
    "assert_raises_with_message",
    "assert_value_in_range",
    "count_files_in_dir",
    "create_mock_ao2d_file",
    "generate_mock_tables",
    "k0s_daughter_momenta",
    "total_entries",
]
