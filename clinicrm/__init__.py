"""
clinicrm - patient follow-up CRM data layer.

Query/mutation hooks over a Supabase store, a local demo-data cache,
and a session manager with an admin bypass for demos.
"""

__version__ = "0.1.0"
