"""
Versioned catalog of shared binary-asset models.

Releases are stored as ``<model_id>/<version>/`` folders next to a global
``models_index.json``, in a local/shared folder or behind an HTTP endpoint.
"""

__version__ = "0.1.0"
