"""Value layering and project configuration."""
from talm.config.project import ChartFile, load_chart
from talm.config.values import SetSpec, ValueSet, resolve_values

__all__ = ['ChartFile', 'SetSpec', 'ValueSet', 'load_chart', 'resolve_values']
