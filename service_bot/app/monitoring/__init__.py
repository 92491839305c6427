"""
Process health monitoring.
"""
