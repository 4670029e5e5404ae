# dispatch_engine/core/__init__.py
"""
Доменный слой (Core Domain).
Заявки, водители, предложения и правила их жизненного цикла.
"""
