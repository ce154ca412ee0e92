"""Landmark Atlas — collaborator clients, spatial cache, search orchestration and HTTP API."""
