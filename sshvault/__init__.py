"""sshvault - keep the OpenSSH client config organised, locally and on remote machines."""

__version__ = "1.0.0"
__author__ = "sshvault contributors"
