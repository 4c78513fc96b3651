"""
dav-manager - keep a CardDAV address book in line with a markdown table.

Contacts that drop out of the table are archived as vCards into local
bucket folders before they are removed from the server.
"""

__version__ = "0.3.0"
__author__ = "dav-manager contributors"

__all__ = ["__version__", "__author__"]
