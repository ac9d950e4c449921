"""
passkey-server - WebAuthn ceremony orchestration for FastAPI.

Issues single-use challenges, sequences registration and authentication
ceremonies, and commits verified results to a per-user credential registry.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
