"""
Workflows package - Sample workflow implementations.
"""

from idflow.workflows.demo import create_demo_workflow, install_demo_workflow

__all__ = [
    "create_demo_workflow",
    "install_demo_workflow",
]
