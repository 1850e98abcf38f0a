"""
Typer command-line interface for the metadata providers.
"""
