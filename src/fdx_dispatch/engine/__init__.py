"""In-process task execution engine for fallible backing operations.

Callers submit an operation name and arguments to a ``Dispatcher`` and get a
``TaskHandle`` back. Worker slots claim attempts from a named in-memory queue,
run the registered activity behind the fault injector, classify any failure
against the closed ``ErrorKind`` taxonomy, and let the retry policy decide
between a delayed re-attempt and a terminal result.

Nothing here survives a process restart: there is no durable history and no
replay, only "submit an operation, get a retried, classified result".
"""
