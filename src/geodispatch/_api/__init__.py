"""Clients for the external collaborators (store, token endpoint, push gateway)."""
