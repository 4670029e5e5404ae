# dispatch_engine/api/__init__.py
"""
HTTP API диспетчерского движка (FastAPI).
"""
