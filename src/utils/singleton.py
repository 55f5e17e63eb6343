"""Process-wide shared instances (database connections) for the API workers."""

import threading
from typing import Any, Dict, Type


class Singleton(type):
    """Metaclass returning one shared instance per class.

    Usage:
        class DatabaseManager(metaclass=Singleton):
            pass

    ``drop`` forgets the instance after its resources are closed, so an app that is
    started again (tests, reloads) reconnects instead of reusing a closed client.
    """

    _instances: Dict[Type, Any] = {}
    _lock = threading.Lock()

    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super(Singleton, cls).__call__(*args, **kwargs)
        return cls._instances[cls]

    def drop(cls) -> None:
        with cls._lock:
            cls._instances.pop(cls, None)

    def exists(cls) -> bool:
        return cls in cls._instances
