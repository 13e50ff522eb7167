"""
Homologation: vehicle homologation submission workflow.

The constitutional piece is the status workflow in ``homologation.workflow``;
the CLI and API packages are thin ports over it.
"""

__version__ = "1.0.0"
