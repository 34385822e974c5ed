"""
Release Guardian

Installs npm packages only once their versions are old enough, and screens
them against npm audit before keeping them.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
