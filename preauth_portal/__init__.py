"""
Preauth Portal

A single login page in front of several independent mail platform
deployments. A submitted credential is routed to the tenant that owns the
user's email domain, verified there, and answered with a signed preauth URL
that logs the browser straight into that tenant's webmail.
"""

__version__ = "1.0.0"
