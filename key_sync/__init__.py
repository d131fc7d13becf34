"""key-sync is a library for synchronizing trusted key material from key vaults.

Certificates and public keys declared by KeyManagementProvider resources are
fetched from their backing key store and kept in a process wide store that is
read by signature verification.
"""

__all__: list[str] = []
