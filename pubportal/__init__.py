"""
Publication Portal API package.

Role-based publication management: admin, staff and professor portals
sharing one session cookie.
"""

__version__ = "1.0.0"
