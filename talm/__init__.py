"""talm - Helm-like templating for Talos Linux machine configuration.

Example:
    $ talm template -t templates/controlplane.yaml --offline
"""

__version__ = "0.1.0"
