"""
Authentication Package

This package implements the credential relay: routing a login to the tenant
that owns the user's domain, verifying it there, and issuing a signed preauth
redirect into that tenant's webmail.

Modules:
- resolver: identifier -> email -> ordered candidate tenants
- tls: per-call outbound trust policy
- verifier: SOAP AuthRequest against a tenant
- preauth: HMAC-SHA1 preauth token and redirect URL
- failover: sequential candidate state machine
- service: failover run + audit record
- routes: public /api/login endpoint

The login flow:
1. Client posts identifier/password to /api/login
2. Resolver picks exact-domain tenants, then catch-all tenants
3. Candidates are verified one by one until one accepts
4. The winner's preauth URL is returned; every call is audited
"""
