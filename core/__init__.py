"""
core/ - Question-answering pipeline for the Project CYSTEM assistant
====================================================================

This package contains the request-time components:
- safety.py: Guardrail filter for dosage / prescription / diagnosis requests
- faq.py: Curated FAQ shortcut
- cache.py: Persistent answer cache with TTL expiry
- context.py: Loaded indices, cache and providers shared by all requests
- service.py: Main service layer that orchestrates everything
"""
