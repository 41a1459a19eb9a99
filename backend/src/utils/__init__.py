"""
Utility modules for the booking application.

This package contains shared utility functions and helpers used across
the application, including datetime utilities and database query helpers.
"""
