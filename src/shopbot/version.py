"""Package version.

Bump rules:
- Patch (0.1.x): bug fixes, timing or layout tweaks
- Minor (0.x.0): new workflows, new session operations
- Major (x.0.0): changes to the protocol-client seam
"""

__version__ = "0.1.0"
