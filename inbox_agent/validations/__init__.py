"""
Input validation for user-managed records.
"""

from .category import CategoryInput, CategoryUpdate, CategoryService, format_validation_error

__all__ = ['CategoryInput', 'CategoryUpdate', 'CategoryService', 'format_validation_error']
