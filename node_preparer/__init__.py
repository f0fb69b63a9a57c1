"""Node preparer (node-local reconciliation agent).

Core design goals:
- Desired state comes from the KV store, actual state from the filesystem
- Idempotent installs (an existing install directory is never touched)
- Crash-safe placement (stage under basedir, then rename)
- One bad application never blocks the rest of the node
- Centralized logging
"""

__all__ = []
