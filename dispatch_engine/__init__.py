# dispatch_engine/__init__.py
"""
Движок диспетчеризации заявок на доставку.
"""

__version__ = "1.0.0"
