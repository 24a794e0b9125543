"""Authentication and authorization.

Learn: Users authenticate with email/password and receive a JWT pair:
1. Access token (15 min) → sent as `Authorization: Bearer ...` on every call
2. Refresh token (7 days) → exchanged once for a new pair, tracked in a ledger

Every protected route resolves the bearer token to a CurrentUser, then
applies role/ownership rules from medconnect.auth.dependencies.
"""
