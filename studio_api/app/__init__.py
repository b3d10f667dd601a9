"""
Studio API server: the upstream origin behind the dev proxy.
"""
