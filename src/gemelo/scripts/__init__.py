"""Scripts de línea de comandos del matcher."""
