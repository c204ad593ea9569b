"""
connectors — per-tenant OAuth integrations and platform data for the ad hub.

Provides:
  • OAuth app registrations with secrets sealed by AES-256-GCM
  • Consent URL generation with signed, single-use state (PKCE where required)
  • Code exchange, token storage, refresh, revocation and soft disconnect
  • API-key connections validated against the platform catalog
  • Concurrent campaign fetch across connected platforms

Each platform family (Google, Meta, LinkedIn, …) is a subclass of BaseConnector.
"""
