"""A Kubernetes operator that installs and removes OLM operators requested
through OperandRequest resources.
"""
