"""
Excepciones del sistema.

Solo dos errores son fatales para un run: entrada inválida (antes de
cualquier escritura) y falla de persistencia. Los datos incompletos de un
listing nunca generan errores; degradan el sub-score correspondiente.
"""


class GemeloError(Exception):
    """Clase base para errores de gemelo."""


class InputError(GemeloError):
    """Documento de entrada ilegible o mal formado."""


class PersistenceFailure(GemeloError):
    """El store no está disponible o rechazó una escritura."""
