"""MedConnect — healthcare appointment brokering backend.

Agents (corporate users booking on behalf of patients) register, sign in
and hold JWT sessions here. This package is the account and session core:
credential storage, token issuance/rotation/revocation, and the
per-request access rules every other module relies on.
"""

__version__ = "0.1.0"
