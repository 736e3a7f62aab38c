"""AIVenger — FastAPI REST API layer.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic response models.
dependencies
    Service wiring and the identity dependencies.
"""
