"""
Kuberollout executes the stages of progressive delivery pipelines for Kubernetes applications.
"""

__version__ = "0.1.0"
