"""
Data models for confbind.

This module contains the option bindings and the value coercion layer they share.
"""

from .coercion import TypeCategory, coercer_for
from .option import Variable, Option, OptionSpec, AttributeOption, SetterOption

__all__ = [
    'TypeCategory',
    'coercer_for',
    'Variable',
    'Option',
    'OptionSpec',
    'AttributeOption',
    'SetterOption'
]
