"""
Remote Module — Transport to the proxy host.
"""

from .ssh import RemoteHost

__all__ = ["RemoteHost"]
