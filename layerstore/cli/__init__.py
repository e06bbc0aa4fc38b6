"""Layerstore CLI.

A command-line interface for inspecting and editing configured storage
stacks. Built with Click and Rich.
"""

from layerstore.cli.main import cli

__all__ = ["cli"]
