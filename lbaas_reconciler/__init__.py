"""Reconciles Anexia LBaaS load balancers onto static service definitions."""

__version__ = "0.1.0"
