#!/usr/bin/env python3
"""
Custom exceptions for the K0s tracking-efficiency task

Provides a hierarchy of exceptions for better error handling and diagnostics.
All custom exceptions inherit from AnalysisError for easy catching.

Per-candidate selection never raises: malformed candidates are rejected.
These exceptions cover setup, I/O and histogram bookkeeping.
"""


class AnalysisError(Exception):
    """
    Base exception for all K0s task errors

    All custom exceptions inherit from this class, allowing users to catch
    all analysis-specific errors with a single except clause.
    """
    pass


class ConfigurationError(AnalysisError):
    """
    Raised when configuration is invalid or missing required fields

    Examples:
    - Missing required config file
    - Cut value outside its physical range (e.g. cosPA > 1)
    - Missing required config sections
    """
    pass


class DataLoadError(AnalysisError):
    """
    Raised when input tables cannot be loaded

    Examples:
    - File not found
    - Missing collision/track/V0 tree in ROOT file
    - Daughter index pointing outside the track table
    """
    pass


class BranchMissingError(AnalysisError):
    """
    Raised when a required branch is not found in an input tree

    Examples:
    - Missing fITSClusterMap in the track tree
    - Branch name typo in data.toml
    """
    def __init__(self, branch_name: str, file_path: str = None):
        """
        Initialize BranchMissingError

        Args:
            branch_name: Name of the missing branch
            file_path: Optional path to the file being read
        """
        self.branch_name = branch_name
        self.file_path = file_path

        message = f"Required branch '{branch_name}' not found"
        if file_path:
            message += f" in file: {file_path}"

        super().__init__(message)


class HistogramError(AnalysisError):
    """
    Raised when a histogram operation is invalid

    Examples:
    - Filling a histogram that was never booked
    - Booking the same name twice
    - Wrong number of coordinates for the histogram dimension
    """
    pass


class EfficiencyError(AnalysisError):
    """
    Raised when efficiency extraction fails

    Examples:
    - Unknown projection variable or status type
    - 5D status histogram not booked in the registry
    """
    pass


class ValidationError(AnalysisError):
    """
    Raised when validation checks fail

    Examples:
    - More selected than total events in the counter
    - Efficiency outside [0, 1]
    """
    pass
