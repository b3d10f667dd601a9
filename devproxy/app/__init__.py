"""
Development reverse proxy for the AlternaView front end.

Forwards /api, /share and /dl to the local API server with cookie scoping
rewritten for the dev origin.
"""
