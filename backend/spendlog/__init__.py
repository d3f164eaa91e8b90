"""Top-level package for the Spendlog expense tracking backend.

The package holds the FastAPI application (``spendlog.api``), the
Dramatiq extraction consumer (``spendlog.core.tasks`` and
``spendlog.worker``), the job record store and extraction services
(``spendlog.services``) and the ORM / Pydantic models
(``spendlog.models``).

To run the API locally:

```bash
uvicorn spendlog.api.main:app --reload
```

and the queue consumer:

```bash
dramatiq spendlog.worker
```

Configuration is read from environment variables or a ``.env`` file at
the project root; see ``spendlog.core.config``.
"""

__all__: list[str] = []
