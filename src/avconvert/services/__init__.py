"""
Conversion services: format catalog, engines, cloud client, orchestrator,
history store and file helpers.
"""
