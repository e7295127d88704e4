"""
servicegraph - Command Line Interface

Main CLI entry point for inspecting and booting service manifests.
"""
from cli.main import app, main

__all__ = ["app", "main"]
