import threading
from contextlib import contextmanager


class KeyedLock:
    """Un mutex por clave, para secuenciar lecturas-luego-escrituras.

    La entrada de una clave se elimina cuando la suelta su último usuario.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # clave -> [lock, cantidad de hilos que lo usan o esperan]
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


# Uniones a grupos: una a la vez por categoría
category_locks = KeyedLock()
# Calificaciones: una a la vez por (actividad, evaluado, evaluador)
grade_locks = KeyedLock()
