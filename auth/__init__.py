"""
auth — bearer-token verification for the integrations API.

Provides:
  • Signed session token creation & verification
  • ``get_current_user_id`` and ``db_session`` FastAPI dependencies
"""
