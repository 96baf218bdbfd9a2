"""NVIDIA Provisioner - Main package

Installs, configures and removes NVIDIA GPU drivers, the NVIDIA Container
Toolkit and Docker Engine on Ubuntu hosts.
"""

__version__ = "1.0.0"
__package_name__ = "nvidia-provisioner"
