"""
Metric sources discovered by the CLI.
"""
