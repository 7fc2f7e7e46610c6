"""pipeline_dashboard - Datensynchronisation für ein Pipeline-Status-Dashboard.

Das Paket pollt eine Pipeline-Status-API, aggregiert die Details aller
Pipelines in deterministischer Reihenfolge und veröffentlicht einen
unveränderlichen Snapshot für die Darstellungsschicht.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
