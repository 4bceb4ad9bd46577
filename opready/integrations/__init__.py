"""opready.integrations: external collaborator gateways.

All object-store traffic (evidence file blobs) goes through a gateway in
this package, never via bare filesystem or ``requests`` calls in services
or blueprints.

Current gateways:
  object_store.LocalObjectStore        : filesystem under the instance folder
  object_store.SupabaseStorageGateway  : Supabase Storage REST API
"""
