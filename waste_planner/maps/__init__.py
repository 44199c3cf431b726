"""
External maps capability.

Submodules:
  google_client — Google Geocoding + Distance Matrix over httpx

Credential placement (.env, gitignored):
  GOOGLE_MAPS_API_KEY — server-side key with Geocoding and Distance Matrix enabled
"""
