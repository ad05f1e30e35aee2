"""Quadlet Symlink Reconciler (QSR).

Single-node convergence controller that keeps the Podman Quadlet directory in
sync with a gitops tree of ``.container`` descriptors:
 - desired/actual state discovery
 - diffing into an add/update/remove plan
 - idempotent application (symlinks, daemon-reload, start/stop)
 - change-triggered re-entry with debouncing and a periodic heartbeat

Each node runs its own instance; there is no coordination between nodes.
"""
